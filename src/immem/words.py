"""
Reconstruct learner-facing words from IPADIC morphological tokens.

The pass is a single left-to-right walk with one token of lookahead and
access to the previously emitted word. Each token is classified through a
rule table keyed by ``(pos, pos_detail_1)`` with a per-``pos`` fallback; the
resulting rule decides whether the token starts a new word, attaches to the
previous one, or swallows the following token.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping

from .tokens import Token, deserialize_tokens, serialize_tokens

__all__ = [
    "Word",
    "build_words",
    "serialize_words",
    "deserialize_words",
    "PARTS_OF_SPEECH",
    "NOUN",
    "PROPER_NOUN",
    "PRONOUN",
    "VERB",
    "ADJECTIVE",
    "ADVERB",
    "NUMBER",
    "SUFFIX",
    "PREFIX",
    "CONJUNCTION",
    "POSTPOSITION",
    "DETERMINER",
    "SYMBOL",
    "INTERJECTION",
    "OTHER",
    "TBD",
    "GRAMMAR_AUXILIARY",
    "GRAMMAR_NOMINAL",
]

NOUN = "noun"
PROPER_NOUN = "proper_noun"
PRONOUN = "pronoun"
VERB = "verb"
ADJECTIVE = "adjective"
ADVERB = "adverb"
NUMBER = "number"
SUFFIX = "suffix"
PREFIX = "prefix"
CONJUNCTION = "conjunction"
POSTPOSITION = "postposition"
DETERMINER = "determiner"
SYMBOL = "symbol"
INTERJECTION = "interjection"
OTHER = "other"
TBD = "tbd"

PARTS_OF_SPEECH = frozenset(
    {
        NOUN,
        PROPER_NOUN,
        PRONOUN,
        VERB,
        ADJECTIVE,
        ADVERB,
        NUMBER,
        SUFFIX,
        PREFIX,
        CONJUNCTION,
        POSTPOSITION,
        DETERMINER,
        SYMBOL,
        INTERJECTION,
        OTHER,
        TBD,
    }
)

GRAMMAR_AUXILIARY = "auxiliary"
GRAMMAR_NOMINAL = "nominal"

# IPADIC part-of-speech tags.
MEISHI = "名詞"
KOYUUMEISHI = "固有名詞"
DAIMEISHI = "代名詞"
JODOUSHI = "助動詞"
KAZU = "数"
JOSHI = "助詞"
SETTOUSHI = "接頭詞"
DOUSHI = "動詞"
KIGOU = "記号"
FIRAA = "フィラー"
SONOTA = "その他"
KANDOUSHI = "感動詞"
RENTAISHI = "連体詞"
SETSUZOKUSHI = "接続詞"
FUKUSHI = "副詞"
SETSUZOKUJOSHI = "接続助詞"
KEIYOUSHI = "形容詞"
HIJIRITSU = "非自立"
FUKUSHIKANOU = "副詞可能"
SAHENSETSUZOKU = "サ変接続"
KEIYOUDOUSHIGOKAN = "形容動詞語幹"
NAIKEIYOUSHIGOKAN = "ナイ形容詞語幹"
JODOUSHIGOKAN = "助動詞語幹"
FUKUSHIKA = "副詞化"
TAIGENSETSUZOKU = "体言接続"
RENTAIKA = "連体化"
TOKUSHU = "特殊"
SETSUBI = "接尾"
SETSUZOKUSHITEKI = "接続詞的"
DOUSHIHIJIRITSUTEKI = "動詞非自立的"
JINMEI = "人名"
KAKARIJOSHI = "係助詞"

# IPADIC conjugation types and forms.
SAHEN_SURU = "サ変・スル"
TOKUSHU_TA = "特殊・タ"
TOKUSHU_NAI = "特殊・ナイ"
TOKUSHU_TAI = "特殊・タイ"
TOKUSHU_DESU = "特殊・デス"
TOKUSHU_DA = "特殊・ダ"
TOKUSHU_MASU = "特殊・マス"
TOKUSHU_NU = "特殊・ヌ"
FUHENKAGATA = "不変化型"
MEIREI_I = "命令ｉ"

NA = "な"
NI = "に"
NN = "ん"
SA = "さ"
CONNECTIVE_PARTICLES = {"て", "で", "ば"}
ATTACHING_AUXILIARY_TYPES = {TOKUSHU_TA, TOKUSHU_NAI, TOKUSHU_TAI, TOKUSHU_MASU, TOKUSHU_NU}


@dataclass
class Word:
    """A run of one or more tokens treated as a single vocabulary unit."""

    surface: str
    lemma: str
    part_of_speech: str
    tokens: list[Token] = field(default_factory=list)
    reading: str = ""
    transcription: str = ""
    grammar: str | None = None


@dataclass(frozen=True)
class _Rule:
    pos: str | None = None
    grammar: str | None = None
    eat_next: bool = False
    eat_lemma: bool = True
    attach_to_previous: bool = False
    also_attach_to_lemma: bool = False
    update_pos: bool = False


_RuleHandler = Callable[[Token, "Token | None", list[Word]], _Rule]


def _fixed(rule: _Rule) -> _RuleHandler:
    def _handler(token: Token, following: Token | None, words: list[Word]) -> _Rule:
        return rule

    return _handler


def _is_ni_particle(token: Token) -> bool:
    return token.pos == JOSHI and token.surface == NI


def _noun_stem(token: Token, following: Token | None, words: list[Word]) -> _Rule:
    # サ変/形容動詞 stems take their class from the conjugating token that follows.
    if following is None:
        return _Rule(pos=NOUN)
    if following.conjugated_type == SAHEN_SURU:
        return _Rule(pos=VERB, eat_next=True)
    if following.conjugated_type == TOKUSHU_DA:
        return _Rule(pos=ADJECTIVE, eat_next=following.conjugated_form == TAIGENSETSUZOKU)
    if following.conjugated_type == TOKUSHU_NAI:
        return _Rule(pos=ADJECTIVE, eat_next=True)
    if _is_ni_particle(following):
        return _Rule(pos=ADVERB)
    return _Rule(pos=NOUN)


def _dependent_noun(token: Token, following: Token | None, words: list[Word]) -> _Rule:
    if following is None or not token.pos_detail_2:
        return _Rule(pos=NOUN)
    detail = token.pos_detail_2
    if detail == FUKUSHIKANOU:
        if _is_ni_particle(following):
            return _Rule(pos=ADVERB, eat_next=True, eat_lemma=False)
    elif detail == JODOUSHIGOKAN:
        if following.conjugated_type == TOKUSHU_DA:
            return _Rule(
                pos=VERB,
                grammar=GRAMMAR_AUXILIARY,
                eat_next=following.conjugated_form == TAIGENSETSUZOKU,
            )
        if following.pos == JOSHI and following.pos_detail_1 == FUKUSHIKA:
            return _Rule(pos=ADVERB, eat_next=True, eat_lemma=False)
    elif detail == KEIYOUDOUSHIGOKAN:
        eat_next = (
            following.conjugated_type == TOKUSHU_DA
            and following.conjugated_form == TAIGENSETSUZOKU
        ) or following.pos_detail_1 == RENTAIKA
        return _Rule(pos=ADJECTIVE, eat_next=eat_next)
    return _Rule(pos=NOUN)


def _number(token: Token, following: Token | None, words: list[Word]) -> _Rule:
    # Compares against the previous *word*, not the previous token.
    if words and words[-1].part_of_speech == NUMBER:
        return _Rule(pos=NUMBER, attach_to_previous=True, also_attach_to_lemma=True)
    return _Rule(pos=NUMBER)


def _noun_suffix(token: Token, following: Token | None, words: list[Word]) -> _Rule:
    if token.pos_detail_2 == JINMEI:
        return _Rule(pos=SUFFIX)
    if token.pos_detail_2 == TOKUSHU and token.base == SA:
        return _Rule(pos=NOUN, attach_to_previous=True, update_pos=True)
    return _Rule(pos=NOUN, attach_to_previous=True, also_attach_to_lemma=True)


def _auxiliary(token: Token, following: Token | None, words: list[Word]) -> _Rule:
    last_token = words[-1].tokens[-1] if words and words[-1].tokens else None
    after_binding_particle = last_token is not None and last_token.pos_detail_1 == KAKARIJOSHI
    if not after_binding_particle and token.conjugated_type in ATTACHING_AUXILIARY_TYPES:
        return _Rule(pos=POSTPOSITION, attach_to_previous=True)
    if token.conjugated_type == FUHENKAGATA and token.base == NN:
        return _Rule(pos=POSTPOSITION, attach_to_previous=True)
    if token.conjugated_type in (TOKUSHU_DA, TOKUSHU_DESU) and token.surface != NA:
        return _Rule(pos=VERB)
    return _Rule(pos=POSTPOSITION)


def _subsidiary_verb(token: Token, following: Token | None, words: list[Word]) -> _Rule:
    return _Rule(pos=VERB, attach_to_previous=token.conjugated_form != MEIREI_I)


def _conjunctive_particle(token: Token, following: Token | None, words: list[Word]) -> _Rule:
    return _Rule(pos=POSTPOSITION, attach_to_previous=token.surface in CONNECTIVE_PARTICLES)


_RULES: dict[tuple[str, str], _RuleHandler] = {
    (MEISHI, ""): _fixed(_Rule(pos=NOUN)),
    (MEISHI, KOYUUMEISHI): _fixed(_Rule(pos=PROPER_NOUN)),
    (MEISHI, DAIMEISHI): _fixed(_Rule(pos=PRONOUN)),
    (MEISHI, FUKUSHIKANOU): _noun_stem,
    (MEISHI, SAHENSETSUZOKU): _noun_stem,
    (MEISHI, KEIYOUDOUSHIGOKAN): _noun_stem,
    (MEISHI, NAIKEIYOUSHIGOKAN): _noun_stem,
    (MEISHI, HIJIRITSU): _dependent_noun,
    (MEISHI, TOKUSHU): _dependent_noun,
    (MEISHI, KAZU): _number,
    (MEISHI, SETSUBI): _noun_suffix,
    (MEISHI, SETSUZOKUSHITEKI): _fixed(_Rule(pos=CONJUNCTION)),
    (MEISHI, DOUSHIHIJIRITSUTEKI): _fixed(_Rule(pos=VERB, grammar=GRAMMAR_NOMINAL)),
    (SETTOUSHI, ""): _fixed(_Rule(pos=PREFIX)),
    (JODOUSHI, ""): _auxiliary,
    (DOUSHI, ""): _fixed(_Rule(pos=VERB)),
    (DOUSHI, SETSUBI): _fixed(_Rule(pos=VERB, attach_to_previous=True)),
    (DOUSHI, HIJIRITSU): _subsidiary_verb,
    (KEIYOUSHI, ""): _fixed(_Rule(pos=ADJECTIVE)),
    (JOSHI, ""): _fixed(_Rule(pos=POSTPOSITION)),
    (JOSHI, SETSUZOKUJOSHI): _conjunctive_particle,
    (RENTAISHI, ""): _fixed(_Rule(pos=DETERMINER)),
    (SETSUZOKUSHI, ""): _fixed(_Rule(pos=CONJUNCTION)),
    (FUKUSHI, ""): _fixed(_Rule(pos=ADVERB)),
    (KIGOU, ""): _fixed(_Rule(pos=SYMBOL)),
    (FIRAA, ""): _fixed(_Rule(pos=INTERJECTION)),
    (KANDOUSHI, ""): _fixed(_Rule(pos=INTERJECTION)),
    (SONOTA, ""): _fixed(_Rule(pos=OTHER)),
}

_UNDETERMINED = _Rule()


def _rule_for(token: Token, following: Token | None, words: list[Word]) -> _Rule:
    handler = _RULES.get((token.pos, token.pos_detail_1))
    if handler is None:
        handler = _RULES.get((token.pos, ""))
    if handler is None:
        return _UNDETERMINED
    return handler(token, following, words)


def _append_token(word: Word, token: Token, *, append_lemma: bool) -> None:
    word.tokens.append(token)
    word.surface += token.surface
    word.reading += token.reading
    word.transcription += token.pronunciation
    if append_lemma:
        word.lemma += token.base


def build_words(tokens: Iterable[Token]) -> list[Word]:
    """Merge ``tokens`` into words; every token lands in exactly one word."""
    sequence = list(tokens)
    words: list[Word] = []
    index = 0
    total = len(sequence)
    while index < total:
        token = sequence[index]
        following = sequence[index + 1] if index + 1 < total else None
        rule = _rule_for(token, following, words)
        if rule.attach_to_previous and words:
            previous = words[-1]
            _append_token(previous, token, append_lemma=rule.also_attach_to_lemma)
            if rule.update_pos and rule.pos:
                previous.part_of_speech = rule.pos
        else:
            word = Word(
                surface=token.surface,
                lemma=token.base,
                part_of_speech=rule.pos or TBD,
                tokens=[token],
                reading=token.reading,
                transcription=token.pronunciation,
                grammar=rule.grammar,
            )
            if rule.eat_next and following is not None:
                _append_token(word, following, append_lemma=rule.eat_lemma)
                index += 1
            words.append(word)
        index += 1
    return words


def serialize_words(words: Iterable[Word]) -> list[dict[str, object]]:
    payload: list[dict[str, object]] = []
    for word in words:
        extra: dict[str, object] = {
            "reading": word.reading,
            "transcription": word.transcription,
        }
        if word.grammar:
            extra["grammar"] = word.grammar
        payload.append(
            {
                "word": word.surface,
                "lemma": word.lemma,
                "part_of_speech": word.part_of_speech,
                "tokens": serialize_tokens(word.tokens),
                "extra": extra,
            }
        )
    return payload


def deserialize_words(data: Iterable[Mapping[str, object]]) -> list[Word]:
    words: list[Word] = []
    for entry in data:
        if not isinstance(entry, Mapping):
            continue
        surface = entry.get("word")
        lemma = entry.get("lemma")
        if not isinstance(surface, str) or not isinstance(lemma, str):
            continue
        pos = entry.get("part_of_speech")
        if not isinstance(pos, str) or pos not in PARTS_OF_SPEECH:
            pos = TBD
        raw_tokens = entry.get("tokens")
        tokens = deserialize_tokens(raw_tokens) if isinstance(raw_tokens, list) else []
        extra = entry.get("extra")
        if not isinstance(extra, Mapping):
            extra = {}
        reading = extra.get("reading")
        transcription = extra.get("transcription")
        grammar = extra.get("grammar")
        words.append(
            Word(
                surface=surface,
                lemma=lemma,
                part_of_speech=pos,
                tokens=tokens,
                reading=reading if isinstance(reading, str) else "",
                transcription=transcription if isinstance(transcription, str) else "",
                grammar=grammar if isinstance(grammar, str) else None,
            )
        )
    return words
