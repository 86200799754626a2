"""
Split displayed caption markup into analysable text and furigana spans.

Captions arrive as HTML in which kanji runs carry their reading through
``<ruby>`` groups (``<ruby><rb>漢字</rb><rt>かんじ</rt></ruby>``). Parsing
yields the plain text fed to the tokenizer, a sanitized copy of the markup
for later rendering, and one :class:`FuriganaMapping` per annotated run
whose offsets index into that same plain text.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Iterable

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

__all__ = [
    "FuriganaMapping",
    "InvalidCaptionError",
    "ParsedCaption",
    "find_furigana_for_surface",
    "parse_caption",
]

HIGHLIGHT_CLASS = "im-highlight"
ENGINE_CLASS_PREFIX = "im-"
ENGINE_TAG_CLASSES = (("ruby", "im-ruby"), ("rt", "im-rt"), ("rb", "im-rb"))
_SKIPPED_TAGS = {"rp", "script", "style", "title"}
_GLOSS_TAGS = {"rt", "rtc"}


class InvalidCaptionError(ValueError):
    """Raised when a caption is neither markup text nor a parsed element."""


@dataclass(frozen=True)
class FuriganaMapping:
    kanji: str
    furigana: str
    start: int
    end: int


@dataclass
class ParsedCaption:
    clean_text: str
    display_html: str
    furigana_map: list[FuriganaMapping] = field(default_factory=list)


@dataclass
class _TextAccumulator:
    """Per-parse text buffer; mappings are recorded against its length."""

    parts: list[str] = field(default_factory=list)
    length: int = 0
    mappings: list[FuriganaMapping] = field(default_factory=list)

    def append(self, text: str) -> None:
        if not text:
            return
        self.parts.append(text)
        self.length += len(text)

    def text(self) -> str:
        return "".join(self.parts)


def _caption_root(caption: str | Tag) -> Tag:
    if isinstance(caption, Tag):
        return copy.copy(caption)
    if isinstance(caption, str):
        return BeautifulSoup(caption, "html.parser")
    raise InvalidCaptionError(f"Unsupported caption type: {type(caption).__name__}")


def _class_list(tag: Tag) -> list[str]:
    value = tag.get("class")
    if value is None:
        return []
    if isinstance(value, str):
        return value.split()
    return list(value)


def _prepare_display_html(root: Tag) -> str:
    for element in root.find_all(True):
        classes = _class_list(element)
        if element.has_attr("style") and HIGHLIGHT_CLASS not in classes:
            del element["style"]
        kept = [cls for cls in classes if cls.startswith(ENGINE_CLASS_PREFIX)]
        if kept:
            element["class"] = kept
        elif element.has_attr("class"):
            del element["class"]
    for name, engine_class in ENGINE_TAG_CLASSES:
        for element in root.find_all(name):
            classes = _class_list(element)
            if engine_class not in classes:
                classes.append(engine_class)
            element["class"] = classes
    return root.decode_contents()


def _visible_text(node) -> str:
    parts: list[str] = []
    _collect_visible(node, parts)
    return "".join(parts)


def _collect_visible(node, parts: list[str]) -> None:
    if isinstance(node, PreformattedString):
        return
    if isinstance(node, NavigableString):
        parts.append(str(node))
        return
    if not isinstance(node, Tag):
        return
    if node.name in _SKIPPED_TAGS or node.name in _GLOSS_TAGS:
        return
    if node.name == "br":
        parts.append("\n")
        return
    for child in node.children:
        _collect_visible(child, parts)


def _ruby_base_text(ruby: Tag) -> str:
    """
    Base run of a <ruby> group: segmented <rb> when present, otherwise every
    child except the gloss and fallback parentheses.
    """
    rbs = ruby.find_all("rb")
    if rbs:
        return "".join(_visible_text(rb) for rb in rbs)
    return "".join(_visible_text(child) for child in ruby.children)


def _ruby_reading_text(ruby: Tag) -> str:
    rts = ruby.find_all("rt")
    return "".join(rt.get_text() for rt in rts)


def _walk(node, acc: _TextAccumulator) -> None:
    if isinstance(node, PreformattedString):
        return
    if isinstance(node, NavigableString):
        acc.append(str(node))
        return
    if not isinstance(node, Tag):
        return
    name = node.name
    if name in _SKIPPED_TAGS or name in _GLOSS_TAGS:
        return
    if name == "br":
        acc.append("\n")
        return
    if name == "ruby":
        _walk_ruby(node, acc)
        return
    for child in node.children:
        _walk(child, acc)


def _walk_ruby(ruby: Tag, acc: _TextAccumulator) -> None:
    base = _ruby_base_text(ruby).strip()
    gloss = _ruby_reading_text(ruby).strip()
    start = acc.length
    acc.append(base)
    if base and gloss:
        acc.mappings.append(FuriganaMapping(kanji=base, furigana=gloss, start=start, end=acc.length))


def _unwrap_highlights(root: Tag) -> None:
    for highlight in root.find_all(class_=HIGHLIGHT_CLASS):
        highlight.unwrap()


def _extract_analysis_data(root: Tag) -> tuple[str, list[FuriganaMapping]]:
    _unwrap_highlights(root)
    acc = _TextAccumulator()
    _walk(root, acc)
    return acc.text(), acc.mappings


def parse_caption(caption: str | Tag) -> ParsedCaption:
    """
    Parse caption markup (or an already parsed element) without mutating it.

    Offsets in the returned furigana map always satisfy
    ``clean_text[m.start:m.end] == m.kanji``.
    """
    if caption is None:
        raise InvalidCaptionError("Caption is missing.")
    display_root = _caption_root(caption)
    display_html = _prepare_display_html(display_root)
    analysis_root = _caption_root(caption)
    clean_text, furigana_map = _extract_analysis_data(analysis_root)
    return ParsedCaption(clean_text=clean_text, display_html=display_html, furigana_map=furigana_map)


def find_furigana_for_surface(
    surface: str,
    mappings: Iterable[FuriganaMapping],
) -> FuriganaMapping | None:
    """First mapping whose kanji run equals or contains ``surface``."""
    if not surface:
        return None
    for mapping in mappings:
        if mapping.kanji == surface or surface in mapping.kanji:
            return mapping
    return None
