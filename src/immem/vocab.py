from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping

__all__ = [
    "VocabLibrary",
    "VocabularyEntry",
    "VocabularyError",
    "load_learned_words",
    "load_vocabulary",
    "parse_vocabulary",
]

# Field names of the bundled JLPT list, followed by snake_case aliases.
_FIELD_KEYS = {
    "kanji": ("VocabKanji", "kanji"),
    "reading": ("VocabFurigana", "reading"),
    "definition": ("VocabDefCN", "definition"),
    "level": ("Level", "level"),
    "part_of_speech": ("VocabPoS", "part_of_speech"),
    "frequency": ("Frequency", "frequency"),
}


class VocabularyError(ValueError):
    """Raised when a vocabulary or progress file cannot be interpreted."""


@dataclass(slots=True, frozen=True)
class VocabularyEntry:
    kanji: str
    reading: str = ""
    definition: str = ""
    level: str = ""
    part_of_speech: str = ""
    frequency: str = ""


def _entry_field(entry: Mapping[str, object], name: str) -> str:
    for key in _FIELD_KEYS[name]:
        value = entry.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if isinstance(value, str):
            return value.strip()
    return ""


@dataclass
class VocabLibrary:
    entries: list[VocabularyEntry] = field(default_factory=list)
    _by_kanji: dict[str, VocabularyEntry] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        for entry in self.entries:
            self._by_kanji.setdefault(entry.kanji, entry)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def levels(self) -> list[str]:
        seen: list[str] = []
        for entry in self.entries:
            if entry.level and entry.level not in seen:
                seen.append(entry.level)
        return seen

    def lookup(self, lemma: str) -> VocabularyEntry | None:
        return self._by_kanji.get(lemma)

    def active_wordlist(
        self,
        enabled_levels: Iterable[str] | None = None,
        learned: Iterable[str] = (),
    ) -> set[str]:
        """Lemmas of the enabled levels (all levels when ``None``) not yet learned."""
        levels = set(enabled_levels) if enabled_levels is not None else None
        learned_set = set(learned)
        active: set[str] = set()
        for entry in self.entries:
            if levels is not None and entry.level not in levels:
                continue
            if entry.kanji in learned_set:
                continue
            active.add(entry.kanji)
        return active


def parse_vocabulary(data: object) -> VocabLibrary:
    if not isinstance(data, list):
        raise VocabularyError("Vocabulary data must be a JSON array of entries.")
    entries: list[VocabularyEntry] = []
    for raw in data:
        if not isinstance(raw, Mapping):
            continue
        kanji = _entry_field(raw, "kanji")
        if not kanji:
            continue
        entries.append(
            VocabularyEntry(
                kanji=kanji,
                reading=_entry_field(raw, "reading"),
                definition=_entry_field(raw, "definition"),
                level=_entry_field(raw, "level"),
                part_of_speech=_entry_field(raw, "part_of_speech"),
                frequency=_entry_field(raw, "frequency"),
            )
        )
    return VocabLibrary(entries)


def load_vocabulary(path: Path) -> VocabLibrary:
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise VocabularyError(f"Failed to read vocabulary file: {path}") from exc
    return parse_vocabulary(raw)


def load_learned_words(path: Path | None) -> set[str]:
    """Lemmas from a JSON list of strings or of saved cards (``{"word": ...}``)."""
    if path is None:
        return set()
    path = Path(path)
    if not path.exists():
        return set()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise VocabularyError(f"Failed to read learned words file: {path}") from exc
    if isinstance(raw, Mapping):
        raw = raw.get("savedCards", raw.get("learned"))
    if not isinstance(raw, list):
        raise VocabularyError(f"{path.name} must contain a JSON array.")
    learned: set[str] = set()
    for item in raw:
        if isinstance(item, str):
            word = item.strip()
        elif isinstance(item, Mapping) and isinstance(item.get("word"), str):
            word = item["word"].strip()
        else:
            continue
        if word:
            learned.add(word)
    return learned
