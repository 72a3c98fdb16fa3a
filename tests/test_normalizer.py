from __future__ import annotations

import pytest

from ocrbridge import models
from ocrbridge.errors import ParseError
from ocrbridge.normalizer import (
    calculate_baseline,
    group_lines,
    has_descenders,
    parse_tsv_output,
    sort_reading_order,
)


def _word(text: str, left: float, baseline: float) -> models.Word:
    return models.Word(
        id=text,
        text=text,
        left=left,
        top=baseline - 0.02,
        width=0.05,
        height=0.02,
        baseline=baseline,
        confidence=0.9,
    )


def test_single_word_is_normalized_against_page(tsv) -> None:
    words = parse_tsv_output(tsv([("Hello", 100, 50, 80, 20)]))

    assert len(words) == 1
    word = words[0]
    assert word.text == "Hello"
    assert word.left == pytest.approx(0.1)
    assert word.top == pytest.approx(0.05)
    assert word.width == pytest.approx(0.08)
    assert word.height == pytest.approx(0.02)
    assert word.baseline == pytest.approx(0.07)
    assert word.confidence == pytest.approx(0.96)
    assert word.id


def test_uses_page_dimensions_per_axis(tsv) -> None:
    words = parse_tsv_output(tsv([("Box", 200, 200, 100, 50)], page=(2000, 1000)))
    assert words[0].left == pytest.approx(0.1)
    assert words[0].width == pytest.approx(0.05)
    assert words[0].top == pytest.approx(0.2)
    assert words[0].height == pytest.approx(0.05)


def test_only_non_empty_word_rows_become_words(tsv) -> None:
    lines = tsv([("Hello", 100, 50, 80, 20), ("   ", 200, 50, 30, 20), ("World", 300, 50, 80, 20)])
    lines.insert(2, "2\t1\t1\t0\t0\t0\t100\t50\t280\t20\t-1\t")
    lines.insert(3, "4\t1\t1\t1\t1\t0\t100\t50\t280\t20\t-1\t")

    words = parse_tsv_output(lines)

    assert [w.text for w in words] == ["Hello", "World"]


def test_word_text_is_trimmed(tsv) -> None:
    words = parse_tsv_output(tsv([("  Hello ", 100, 50, 80, 20)]))
    assert words[0].text == "Hello"


def test_header_only_output_yields_no_words(tsv) -> None:
    assert parse_tsv_output(tsv([])[:1]) == []
    assert parse_tsv_output([]) == []


def test_page_row_without_words_yields_no_words(tsv) -> None:
    assert parse_tsv_output(tsv([])) == []


def test_rows_with_too_few_columns_are_skipped(tsv) -> None:
    lines = tsv([("Hello", 100, 50, 80, 20)])
    lines.append("5\t1\t1\t1\t1\t2\t300")
    assert [w.text for w in parse_tsv_output(lines)] == ["Hello"]


def test_missing_page_row_is_a_parse_error(tsv) -> None:
    lines = tsv([("Hello", 100, 50, 80, 20)])
    del lines[1]
    with pytest.raises(ParseError):
        parse_tsv_output(lines)


def test_zero_page_size_is_a_parse_error(tsv) -> None:
    with pytest.raises(ParseError):
        parse_tsv_output(tsv([("Hello", 100, 50, 80, 20)], page=(0, 1000)))


def test_non_numeric_cell_is_a_parse_error(tsv) -> None:
    lines = tsv([("Hello", 100, 50, 80, 20)])
    lines[2] = lines[2].replace("\t100\t", "\tabc\t", 1)
    with pytest.raises(ParseError):
        parse_tsv_output(lines)


def test_confidence_is_scaled_and_clamped(tsv) -> None:
    assert parse_tsv_output(tsv([("Hi", 0, 0, 10, 10)], conf="87.5"))[0].confidence == pytest.approx(0.875)
    assert parse_tsv_output(tsv([("Hi", 0, 0, 10, 10)], conf="-1"))[0].confidence == 0.0


@pytest.mark.parametrize("text", ["gap", "Jump", "(note)", "a,b", "ÇA", "ȘTIRI", "₤5"])
def test_descender_words(text: str) -> None:
    assert has_descenders(text)
    assert calculate_baseline(text, 0.1, 0.02) == pytest.approx(0.1 + 0.02 * 0.77)


@pytest.mark.parametrize("text", ["Hello", "ABC", "1234", "TOTAL:"])
def test_words_without_descenders_sit_on_box_bottom(text: str) -> None:
    assert not has_descenders(text)
    assert calculate_baseline(text, 0.1, 0.02) == pytest.approx(0.12)


def test_baseline_stays_inside_box(tsv) -> None:
    rows = [("Hello", 100, 50, 80, 20), ("going", 200, 52, 90, 26), ("[x]", 400, 300, 40, 30)]
    for word in parse_tsv_output(tsv(rows)):
        assert word.top <= word.baseline <= word.top + word.height + 1e-12


def test_words_on_one_line_are_reordered_left_to_right(tsv) -> None:
    words = parse_tsv_output(tsv([("World", 300, 50, 80, 20), ("Hello", 100, 51, 80, 19)]))
    assert [w.text for w in words] == ["Hello", "World"]


def test_lines_are_ordered_top_to_bottom(tsv) -> None:
    rows = [
        ("Second", 100, 200, 80, 20),
        ("line", 200, 200, 60, 20),
        ("First", 100, 50, 80, 20),
    ]
    words = parse_tsv_output(tsv(rows))
    assert [w.text for w in words] == ["First", "Second", "line"]


def test_grouping_compares_against_first_member_only() -> None:
    first = _word("a", 0.5, 0.100)
    second = _word("b", 0.1, 0.102)
    third = _word("c", 0.3, 0.104)

    groups = group_lines([first, second, third])

    assert [[w.text for w in g] for g in groups] == [["a", "b"], ["c"]]
    assert [w.text for w in sort_reading_order([first, second, third])] == ["b", "a", "c"]


def test_groups_sorted_by_mean_baseline() -> None:
    low = _word("low", 0.1, 0.80)
    high = _word("high", 0.9, 0.10)
    middle = _word("middle", 0.5, 0.45)
    assert [w.text for w in sort_reading_order([low, high, middle])] == ["high", "middle", "low"]


def test_reading_order_property(tsv) -> None:
    rows = [
        ("delta", 600, 410, 70, 20),
        ("atom", 100, 100, 70, 20),
        ("echo", 100, 410, 70, 20),
        ("bravo", 300, 101, 70, 19),
        ("charlie", 500, 100, 90, 20),
    ]
    words = parse_tsv_output(tsv(rows))
    groups = group_lines(words)
    flat = [w.text for g in sorted(groups, key=lambda g: sum(w.baseline for w in g) / len(g)) for w in g]

    assert [w.text for w in words] == flat
    for group in groups:
        lefts = [w.left for w in group]
        assert lefts == sorted(lefts)
    assert [w.text for w in words] == ["atom", "bravo", "charlie", "echo", "delta"]


def test_normalizing_twice_gives_same_sequence(tsv) -> None:
    rows = [("one", 500, 100, 50, 20), ("two", 100, 100, 50, 20), ("three", 100, 300, 50, 20)]
    first = parse_tsv_output(tsv(rows))
    second = parse_tsv_output(tsv(rows))
    strip = lambda words: [w.model_dump(exclude={"id"}) for w in words]  # noqa: E731
    assert strip(first) == strip(second)


def test_empty_input_to_sort() -> None:
    assert sort_reading_order([]) == []
