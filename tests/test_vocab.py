from __future__ import annotations

import json

import pytest

from immem.vocab import (
    VocabularyError,
    load_learned_words,
    load_vocabulary,
    parse_vocabulary,
)


def _jlpt_rows() -> list[dict[str, object]]:
    return [
        {"VocabKanji": "猫", "VocabFurigana": "ねこ", "VocabDefCN": "猫", "Level": "N5", "Frequency": 120},
        {"VocabKanji": "天気", "VocabFurigana": "てんき", "Level": "N5", "VocabPoS": "名"},
        {"VocabKanji": "経済", "VocabFurigana": "けいざい", "Level": "N3"},
        {"VocabKanji": "猫", "VocabFurigana": "ネコ", "Level": "N1"},
        {"VocabKanji": "", "Level": "N2"},
        "not an entry",
    ]


def test_parse_vocabulary_reads_jlpt_fields() -> None:
    library = parse_vocabulary(_jlpt_rows())
    assert len(library) == 4
    entry = library.lookup("猫")
    assert entry is not None
    assert entry.reading == "ねこ"
    assert entry.level == "N5"
    assert entry.frequency == "120"
    assert library.lookup("天気").part_of_speech == "名"
    assert library.lookup("犬") is None
    assert library.levels == ["N5", "N3", "N1"]


def test_parse_vocabulary_accepts_snake_case_keys() -> None:
    library = parse_vocabulary([{"kanji": "犬", "reading": "いぬ", "level": "N5"}])
    assert library.lookup("犬").reading == "いぬ"


def test_parse_vocabulary_rejects_non_list() -> None:
    with pytest.raises(VocabularyError):
        parse_vocabulary({"VocabKanji": "猫"})


def test_active_wordlist_filters_levels_and_learned() -> None:
    library = parse_vocabulary(_jlpt_rows())
    assert library.active_wordlist() == {"猫", "天気", "経済"}
    assert library.active_wordlist(["N3"]) == {"経済"}
    assert library.active_wordlist(["N5"], learned={"猫"}) == {"天気"}
    assert library.active_wordlist([]) == set()


def test_load_vocabulary_from_file(tmp_path) -> None:
    path = tmp_path / "vocab.json"
    path.write_text(json.dumps(_jlpt_rows(), ensure_ascii=False), encoding="utf-8")
    library = load_vocabulary(path)
    assert library.lookup("経済").reading == "けいざい"


def test_load_vocabulary_invalid_json(tmp_path) -> None:
    path = tmp_path / "vocab.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(VocabularyError):
        load_vocabulary(path)


def test_load_learned_words_missing_file_is_empty(tmp_path) -> None:
    assert load_learned_words(None) == set()
    assert load_learned_words(tmp_path / "missing.json") == set()


def test_load_learned_words_accepts_strings_and_cards(tmp_path) -> None:
    path = tmp_path / "learned.json"
    path.write_text(json.dumps(["猫", " 犬 ", {"word": "鳥"}, {"id": 3}, ""], ensure_ascii=False), encoding="utf-8")
    assert load_learned_words(path) == {"猫", "犬", "鳥"}

    saved = tmp_path / "saved.json"
    saved.write_text(json.dumps({"savedCards": [{"word": "天気", "reading": "てんき"}]}, ensure_ascii=False), encoding="utf-8")
    assert load_learned_words(saved) == {"天気"}


def test_load_learned_words_rejects_other_shapes(tmp_path) -> None:
    path = tmp_path / "learned.json"
    path.write_text(json.dumps({"cards": 3}), encoding="utf-8")
    with pytest.raises(VocabularyError):
        load_learned_words(path)
