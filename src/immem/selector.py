from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from typing import Callable, Iterable, Protocol, Sequence

from bs4 import Tag

from .logging_utils import debug_log
from .reading import readings_match
from .ruby import FuriganaMapping, find_furigana_for_surface, parse_caption
from .vocab import VocabularyEntry
from .words import (
    GRAMMAR_AUXILIARY,
    INTERJECTION,
    OTHER,
    POSTPOSITION,
    PREFIX,
    SYMBOL,
    TBD,
    Word,
)

__all__ = [
    "NON_LEARNABLE_POS",
    "TargetSelection",
    "TargetSelector",
    "find_target_word",
    "is_learnable",
    "select_target",
    "validate_reading",
]

NON_LEARNABLE_POS = frozenset({POSTPOSITION, SYMBOL, INTERJECTION, PREFIX, OTHER, TBD})

VocabularyLookup = Callable[[str], "VocabularyEntry | None"]


class WordAnalyzer(Protocol):
    def analyze(self, text: str) -> list[Word]: ...


@dataclass
class TargetSelection:
    word: Word
    highlight_span: tuple[int, int] | None
    clean_text: str
    furigana: FuriganaMapping | None = None


def _is_single_symbol(text: str) -> bool:
    if len(text) != 1:
        return False
    return unicodedata.category(text)[0] in {"P", "S"}


def is_learnable(word: Word) -> bool:
    if word.part_of_speech in NON_LEARNABLE_POS:
        return False
    if word.grammar == GRAMMAR_AUXILIARY:
        return False
    if len(word.tokens) == 1 and _is_single_symbol(word.surface):
        return False
    return True


def validate_reading(
    word: Word,
    furigana_map: Sequence[FuriganaMapping],
    lookup: VocabularyLookup,
) -> bool:
    """
    Check an annotated word's on-screen reading against the stored one.

    Words without a matching gloss pass; annotated words whose lemma has no
    stored reading fail, since they are most likely names.
    """
    mapping = find_furigana_for_surface(word.surface, furigana_map)
    if mapping is None:
        return True
    entry = lookup(word.lemma)
    if entry is None or not entry.reading:
        debug_log("selector", f"No stored reading for {word.lemma!r}; rejecting {word.surface!r}")
        return False
    matched = readings_match(
        mapping.furigana,
        entry.reading,
        allow_partial=mapping.kanji != word.surface,
    )
    if not matched:
        debug_log(
            "selector",
            f"Reading mismatch for {word.surface!r}: {mapping.furigana!r} vs {entry.reading!r}",
        )
    return matched


def _is_target(
    word: Word,
    furigana_map: Sequence[FuriganaMapping],
    active_words: set[str] | frozenset[str],
    learned_words: set[str] | frozenset[str],
    lookup: VocabularyLookup,
) -> tuple[bool, FuriganaMapping | None]:
    if not is_learnable(word):
        return False, None
    if word.lemma not in active_words or word.lemma in learned_words:
        return False, None
    if not validate_reading(word, furigana_map, lookup):
        return False, None
    return True, find_furigana_for_surface(word.surface, furigana_map)


def find_target_word(
    words: Iterable[Word],
    *,
    furigana_map: Sequence[FuriganaMapping] = (),
    active_words: set[str] | frozenset[str],
    learned_words: set[str] | frozenset[str] = frozenset(),
    lookup: VocabularyLookup,
) -> Word | None:
    for word in words:
        matched, _ = _is_target(word, furigana_map, active_words, learned_words, lookup)
        if matched:
            return word
    return None


def _word_spans(text: str, words: Sequence[Word]) -> list[tuple[int, int] | None]:
    spans: list[tuple[int, int] | None] = []
    cursor = 0
    for word in words:
        idx = text.find(word.surface, cursor) if word.surface else -1
        if idx == -1:
            spans.append(None)
            continue
        end = idx + len(word.surface)
        spans.append((idx, end))
        cursor = end
    return spans


def select_target(
    caption: str | Tag,
    *,
    analyzer: WordAnalyzer,
    active_words: set[str] | frozenset[str],
    learned_words: set[str] | frozenset[str] = frozenset(),
    lookup: VocabularyLookup,
) -> TargetSelection | None:
    """
    Return the first unlearned vocabulary word of a caption, or ``None``.

    Raises :class:`immem.ruby.InvalidCaptionError` for unusable input and lets
    analyzer failures propagate to the caller.
    """
    parsed = parse_caption(caption)
    clean_text = parsed.clean_text
    if not clean_text.strip():
        return None
    words = analyzer.analyze(clean_text)
    debug_log("selector", "Analyzed words: " + " | ".join(word.surface for word in words))
    spans = _word_spans(clean_text, words)
    for word, span in zip(words, spans):
        matched, mapping = _is_target(
            word,
            parsed.furigana_map,
            active_words,
            learned_words,
            lookup,
        )
        if matched:
            debug_log("selector", f"Found target word: {word.surface} (lemma: {word.lemma})")
            return TargetSelection(
                word=word,
                highlight_span=span,
                clean_text=clean_text,
                furigana=mapping,
            )
    return None


class TargetSelector:
    """Binds an analyzer and the vocabulary/progress sources to :func:`select_target`.

    The active and learned word sets are fetched afresh on every call.
    """

    def __init__(
        self,
        analyzer: WordAnalyzer,
        lookup: VocabularyLookup,
        get_active_wordlist: Callable[[], Iterable[str]],
        get_learned_words: Callable[[], Iterable[str]] = frozenset,
    ) -> None:
        self._analyzer = analyzer
        self._lookup = lookup
        self._get_active_wordlist = get_active_wordlist
        self._get_learned_words = get_learned_words

    def select(self, caption: str | Tag) -> TargetSelection | None:
        return select_target(
            caption,
            analyzer=self._analyzer,
            active_words=frozenset(self._get_active_wordlist()),
            learned_words=frozenset(self._get_learned_words()),
            lookup=self._lookup,
        )
