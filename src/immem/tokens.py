from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

__all__ = [
    "Token",
    "serialize_tokens",
    "deserialize_tokens",
]

_TEXT_FIELDS = (
    "pos",
    "pos_detail_1",
    "pos_detail_2",
    "pos_detail_3",
    "conjugated_type",
    "conjugated_form",
    "reading",
    "pronunciation",
)


@dataclass(frozen=True)
class Token:
    """
    One morphological unit as emitted by the tokenizer (IPADIC tag set).

    Unset dictionary fields are stored as empty strings so rule lookups never
    have to special-case MeCab's ``*`` placeholder.
    """

    surface: str
    base: str
    pos: str = ""
    pos_detail_1: str = ""
    pos_detail_2: str = ""
    pos_detail_3: str = ""
    conjugated_type: str = ""
    conjugated_form: str = ""
    reading: str = ""
    pronunciation: str = ""


def serialize_tokens(tokens: Iterable[Token]) -> list[dict[str, str]]:
    payload: list[dict[str, str]] = []
    for token in tokens:
        entry = {
            "surface": token.surface,
            "base": token.base,
            "pos": token.pos,
            "pos_detail_1": token.pos_detail_1,
            "pos_detail_2": token.pos_detail_2,
            "pos_detail_3": token.pos_detail_3,
            "conjugated_type": token.conjugated_type,
            "conjugated_form": token.conjugated_form,
            "reading": token.reading,
            "pronunciation": token.pronunciation,
        }
        payload.append(entry)
    return payload


def deserialize_tokens(data: Iterable[Mapping[str, object]]) -> list[Token]:
    tokens: list[Token] = []
    for entry in data:
        if not isinstance(entry, Mapping):
            continue
        surface = entry.get("surface")
        if not isinstance(surface, str) or not surface:
            continue
        base = entry.get("base")
        if not isinstance(base, str) or not base:
            base = surface
        fields: dict[str, str] = {}
        for name in _TEXT_FIELDS:
            value = entry.get(name)
            fields[name] = value if isinstance(value, str) else ""
        tokens.append(Token(surface=surface, base=base, **fields))
    return tokens
