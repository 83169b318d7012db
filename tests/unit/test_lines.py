import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from modsearch.client.lines import FrameLineBuffer


def test_partial_line_is_held_until_completed():
    buffer = FrameLineBuffer()

    assert buffer.feed('{"type":"in') == []
    assert buffer.pending == '{"type":"in'
    assert buffer.feed('it"}\n{"type":"end"}\n') == ['{"type":"init"}', '{"type":"end"}']
    assert buffer.pending == ""


def test_blank_lines_are_skipped():
    buffer = FrameLineBuffer()
    assert buffer.feed("a\n\n   \nb\n") == ["a", "b"]


def test_flush_returns_unterminated_tail_once():
    buffer = FrameLineBuffer()
    buffer.feed('x\n{"type":"end"}')

    assert buffer.flush() == ['{"type":"end"}']
    assert buffer.flush() == []


def test_flush_ignores_whitespace_tail():
    buffer = FrameLineBuffer()
    buffer.feed("x\n  ")
    assert buffer.flush() == []


_line = st.text(alphabet=st.characters(blacklist_characters="\n\r"), min_size=1, max_size=20).filter(
    lambda s: s.strip() != ""
)


@pytest.mark.property
@settings(max_examples=100, deadline=None)
@given(lines=st.lists(_line, max_size=8), cuts=st.lists(st.integers(min_value=0, max_value=200), max_size=10))
def test_any_chunking_yields_the_same_lines(lines: list[str], cuts: list[int]):
    text = "".join(line + "\n" for line in lines)
    points = sorted({min(c, len(text)) for c in cuts} | {0, len(text)})
    chunks = [text[a:b] for a, b in zip(points, points[1:])]

    buffer = FrameLineBuffer()
    out: list[str] = []
    for chunk in chunks:
        out.extend(buffer.feed(chunk))
    out.extend(buffer.flush())

    assert out == lines
