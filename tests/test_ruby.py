from __future__ import annotations

import pytest
from bs4 import BeautifulSoup

from immem.ruby import (
    FuriganaMapping,
    InvalidCaptionError,
    find_furigana_for_surface,
    parse_caption,
)


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def test_segmented_ruby_yields_text_and_mapping() -> None:
    parsed = parse_caption("<ruby><rb>漢字</rb><rt>かんじ</rt></ruby>です")
    assert parsed.clean_text == "漢字です"
    assert parsed.furigana_map == [FuriganaMapping(kanji="漢字", furigana="かんじ", start=0, end=2)]


def test_legacy_ruby_with_fallback_parentheses() -> None:
    parsed = parse_caption("<ruby>漢字<rp>(</rp><rt>かんじ</rt><rp>)</rp></ruby>を書く")
    assert parsed.clean_text == "漢字を書く"
    assert parsed.furigana_map == [FuriganaMapping(kanji="漢字", furigana="かんじ", start=0, end=2)]


def test_mapping_offsets_index_clean_text() -> None:
    html = "今日は<ruby>天気<rt>てんき</rt></ruby>が<ruby><rb>良</rb><rt>よ</rt></ruby>い"
    parsed = parse_caption(html)
    assert parsed.clean_text == "今日は天気が良い"
    assert [(m.kanji, m.start, m.end) for m in parsed.furigana_map] == [("天気", 3, 5), ("良", 6, 7)]
    for mapping in parsed.furigana_map:
        assert parsed.clean_text[mapping.start : mapping.end] == mapping.kanji


def test_highlight_wrappers_are_unwrapped() -> None:
    parsed = parse_caption('私は<span class="im-highlight">猫</span>です')
    assert parsed.clean_text == "私は猫です"
    assert parsed.furigana_map == []


def test_line_breaks_become_newlines() -> None:
    parsed = parse_caption("一行目<br>二行目")
    assert parsed.clean_text == "一行目\n二行目"


def test_ruby_without_gloss_has_no_mapping() -> None:
    parsed = parse_caption("<ruby>漢字<rt></rt></ruby>")
    assert parsed.clean_text == "漢字"
    assert parsed.furigana_map == []


def test_caption_without_ruby() -> None:
    parsed = parse_caption("<i>ただの</i>テキスト")
    assert parsed.clean_text == "ただのテキスト"
    assert parsed.furigana_map == []


def test_display_html_keeps_engine_classes_only() -> None:
    html = (
        '<span class="speaker im-highlight" style="color: red">猫</span>'
        '<b style="font-size: 2em">!</b>'
        '<ruby class="site-ruby"><rb>漢字</rb><rt>かんじ</rt></ruby>'
    )
    parsed = parse_caption(html)
    display = _soup(parsed.display_html)
    span = display.find("span")
    assert span["class"] == ["im-highlight"]
    assert span["style"] == "color: red"
    bold = display.find("b")
    assert not bold.has_attr("style")
    assert not bold.has_attr("class")
    assert display.find("ruby")["class"] == ["im-ruby"]
    assert display.find("rb")["class"] == ["im-rb"]
    assert display.find("rt")["class"] == ["im-rt"]
    # The display copy still carries the highlight; the analysis text does not.
    assert parsed.clean_text == "猫!漢字"


def test_parsed_element_input_is_not_mutated() -> None:
    soup = _soup('<div><span class="im-highlight">猫</span><ruby>犬<rt>いぬ</rt></ruby></div>')
    element = soup.find("div")
    parsed = parse_caption(element)
    assert parsed.clean_text == "猫犬"
    assert element.find(class_="im-highlight") is not None
    assert element.find("rt").get_text() == "いぬ"


@pytest.mark.parametrize("caption", [None, 42])
def test_unusable_caption_raises(caption) -> None:
    with pytest.raises(InvalidCaptionError):
        parse_caption(caption)


def test_find_furigana_matches_whole_or_partial_run() -> None:
    mappings = [
        FuriganaMapping(kanji="天気", furigana="てんき", start=0, end=2),
        FuriganaMapping(kanji="日本語", furigana="にほんご", start=3, end=6),
    ]
    assert find_furigana_for_surface("天気", mappings) is mappings[0]
    assert find_furigana_for_surface("日本", mappings) is mappings[1]
    assert find_furigana_for_surface("猫", mappings) is None
    assert find_furigana_for_surface("", mappings) is None
