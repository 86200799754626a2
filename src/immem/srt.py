from __future__ import annotations

import html
import re
from dataclasses import dataclass

__all__ = [
    "SubtitleEntry",
    "format_timestamp",
    "parse_srt",
    "subtitle_markup",
]

_TIMING_PATTERN = re.compile(
    r"(\d{2}):(\d{2}):(\d{2})[,.](\d{3})\s*-->\s*(\d{2}):(\d{2}):(\d{2})[,.](\d{3})"
)
_BLOCK_SPLIT = re.compile(r"\n\s*\n")
# Inline tags SRT authors use; anything else is escaped as text.
_ALLOWED_TAGS = re.compile(r"&lt;(/?)(i|b|u|ruby|rb|rt|rp)&gt;", re.IGNORECASE)


@dataclass(slots=True)
class SubtitleEntry:
    index: int
    start_time: float
    end_time: float
    text: str


def _to_seconds(hours: str, minutes: str, seconds: str, millis: str) -> float:
    return int(hours) * 3600 + int(minutes) * 60 + int(seconds) + int(millis) / 1000


def parse_srt(content: str) -> list[SubtitleEntry]:
    """Parse SRT text; malformed blocks are skipped and entries sorted by start."""
    entries: list[SubtitleEntry] = []
    normalized = content.replace("\r\n", "\n").replace("\r", "\n").lstrip("\ufeff").strip()
    if not normalized:
        return entries
    for block in _BLOCK_SPLIT.split(normalized):
        lines = block.strip().split("\n")
        if len(lines) < 3:
            continue
        match = _TIMING_PATTERN.search(lines[1])
        if not match:
            continue
        try:
            index = int(lines[0].strip())
        except ValueError:
            continue
        groups = match.groups()
        entries.append(
            SubtitleEntry(
                index=index,
                start_time=_to_seconds(*groups[:4]),
                end_time=_to_seconds(*groups[4:]),
                text="\n".join(lines[2:]),
            )
        )
    entries.sort(key=lambda entry: entry.start_time)
    return entries


def subtitle_markup(entry: SubtitleEntry) -> str:
    """Caption markup for an entry: text escaped, inline tags kept, lines joined by <br>."""
    escaped = html.escape(entry.text, quote=False)
    escaped = _ALLOWED_TAGS.sub(lambda m: f"<{m.group(1)}{m.group(2).lower()}>", escaped)
    return escaped.replace("\n", "<br>")


def format_timestamp(seconds: float) -> str:
    total_ms = int(round(max(0.0, seconds) * 1000))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, millis = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"
