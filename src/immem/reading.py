from __future__ import annotations

import unicodedata

__all__ = [
    "SIMILARITY_THRESHOLD",
    "edit_distance",
    "normalize_reading",
    "reading_similarity",
    "readings_match",
]

SIMILARITY_THRESHOLD = 0.8
LONG_VOWEL_MARK = "ー"
SMALL_TSU_MAP = {"っ": "つ", "ッ": "ツ"}


def _katakana_to_hiragana(text: str) -> str:
    result = []
    for ch in text:
        code = ord(ch)
        if 0x30A1 <= code <= 0x30F6:
            result.append(chr(code - 0x60))
        elif ch == "ヽ":
            result.append("ゝ")
        elif ch == "ヾ":
            result.append("ゞ")
        else:
            result.append(ch)
    return "".join(result)


def normalize_reading(text: str) -> str:
    """Canonical kana form used when comparing an in-context gloss to a stored reading."""
    if not text:
        return ""
    text = unicodedata.normalize("NFC", text).casefold().strip()
    text = text.replace(LONG_VOWEL_MARK, "")
    for small, full in SMALL_TSU_MAP.items():
        text = text.replace(small, full)
    return _katakana_to_hiragana(text)


def edit_distance(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ch_a in enumerate(a, start=1):
        current = [i]
        for j, ch_b in enumerate(b, start=1):
            cost = 0 if ch_a == ch_b else 1
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + cost,
                )
            )
        previous = current
    return previous[-1]


def reading_similarity(a: str, b: str) -> float:
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return (max_len - edit_distance(a, b)) / max_len


def readings_match(gloss: str, stored: str, *, allow_partial: bool = True) -> bool:
    """
    Compare an on-screen reading against the dictionary reading.

    ``allow_partial`` accepts one reading containing the other; callers turn it
    off when the gloss annotates exactly the word, so a longer name reading
    (やまだ) cannot pass on the strength of a shorter entry (やま).
    """
    left = normalize_reading(gloss)
    right = normalize_reading(stored)
    if not left or not right:
        return False
    if left == right:
        return True
    if allow_partial and (left in right or right in left):
        return True
    return reading_similarity(left, right) > SIMILARITY_THRESHOLD
