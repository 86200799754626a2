from .analyzer import (
    AnalyzerError,
    AnalyzerService,
    AnalyzerTimeoutError,
    AnalyzerUnavailableError,
    CachedAnalyzer,
    RemoteAnalyzer,
)
from .nlp import NLPBackend, NLPBackendUnavailableError
from .ruby import FuriganaMapping, InvalidCaptionError, ParsedCaption, parse_caption
from .selector import TargetSelection, TargetSelector, find_target_word, select_target
from .tokens import Token
from .vocab import VocabLibrary, VocabularyEntry, load_learned_words, load_vocabulary
from .words import Word, build_words

__all__ = [
    "Token",
    "Word",
    "build_words",
    "NLPBackend",
    "NLPBackendUnavailableError",
    "FuriganaMapping",
    "ParsedCaption",
    "InvalidCaptionError",
    "parse_caption",
    "TargetSelection",
    "TargetSelector",
    "find_target_word",
    "select_target",
    "VocabLibrary",
    "VocabularyEntry",
    "load_vocabulary",
    "load_learned_words",
    "AnalyzerError",
    "AnalyzerTimeoutError",
    "AnalyzerUnavailableError",
    "AnalyzerService",
    "RemoteAnalyzer",
    "CachedAnalyzer",
]
