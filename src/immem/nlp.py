from __future__ import annotations

import shlex
from pathlib import Path

from .logging_utils import debug_log
from .tokens import Token
from .words import Word, build_words

__all__ = [
    "NLPBackend",
    "NLPBackendUnavailableError",
]

# IPADIC feature layout: pos, pos1, pos2, pos3, ctype, cform, base, reading, pron.
_FEATURE_POS = 0
_FEATURE_POS1 = 1
_FEATURE_POS2 = 2
_FEATURE_POS3 = 3
_FEATURE_CTYPE = 4
_FEATURE_CFORM = 5
_FEATURE_BASE = 6
_FEATURE_READING = 7
_FEATURE_PRON = 8


class NLPBackendUnavailableError(RuntimeError):
    """Raised when the MeCab tokenizer cannot be initialized."""


def _feature_value(feature, index: int) -> str:
    if feature is None:
        return ""
    try:
        value = feature[index]
    except (IndexError, TypeError):
        return ""
    if not value or value == "*":
        return ""
    return str(value)


def _split_feature(feature) -> tuple[str, ...] | None:
    # GenericTagger may hand back the raw CSV string on some builds.
    if isinstance(feature, str):
        return tuple(feature.split(","))
    return feature


class NLPBackend:
    """Fugashi/IPADIC tokenizer producing :class:`Token` sequences.

    Construct once at startup and pass the instance to whatever needs it;
    loading the dictionary is the expensive part.
    """

    def __init__(self, dicdir: str | Path | None = None) -> None:
        try:
            from fugashi import GenericTagger  # type: ignore
        except ImportError as exc:
            raise NLPBackendUnavailableError(
                "Word analysis requires 'fugashi' (MeCab) to be installed."
            ) from exc

        if dicdir is not None:
            args = f"-d {shlex.quote(str(dicdir))}"
        else:
            try:
                import ipadic  # type: ignore
            except ImportError as exc:
                raise NLPBackendUnavailableError(
                    "Word analysis requires the 'ipadic' dictionary package."
                ) from exc
            args = ipadic.MECAB_ARGS
        try:
            self._tagger = GenericTagger(args)
        except RuntimeError as exc:
            raise NLPBackendUnavailableError(
                f"Failed to initialize MeCab with arguments '{args}': {exc}"
            ) from exc
        debug_log("nlp", f"MeCab tagger ready ({args})")

    def tokenize(self, text: str) -> list[Token]:
        tokens: list[Token] = []
        if not text:
            return tokens
        for raw in self._tagger(text):
            surface = raw.surface
            if not surface:
                continue
            feature = _split_feature(getattr(raw, "feature", None))
            base = _feature_value(feature, _FEATURE_BASE) or surface
            tokens.append(
                Token(
                    surface=surface,
                    base=base,
                    pos=_feature_value(feature, _FEATURE_POS),
                    pos_detail_1=_feature_value(feature, _FEATURE_POS1),
                    pos_detail_2=_feature_value(feature, _FEATURE_POS2),
                    pos_detail_3=_feature_value(feature, _FEATURE_POS3),
                    conjugated_type=_feature_value(feature, _FEATURE_CTYPE),
                    conjugated_form=_feature_value(feature, _FEATURE_CFORM),
                    reading=_feature_value(feature, _FEATURE_READING),
                    pronunciation=_feature_value(feature, _FEATURE_PRON),
                )
            )
        return tokens

    def analyze(self, text: str) -> list[Word]:
        return build_words(self.tokenize(text))
