import pytest

from rauf.fences import FenceState, scan_lines_outside_fence


def _has_sentinel(text):
    return scan_lines_outside_fence(text, lambda trimmed: trimmed == "RAUF_COMPLETE")


@pytest.mark.parametrize(
    "text, expected",
    [
        ("all done", False),
        ("status: ok RAUF_COMPLETE maybe", False),
        ("```text\nRAUF_COMPLETE\n```", False),
        ("~~~\nRAUF_COMPLETE\n~~~", False),
        ("```\nRAUF_COMPLETE\n``", False),
        ("~~~\nRAUF_COMPLETE\n```", False),
        ("status: ok\nRAUF_COMPLETE\n", True),
    ],
)
def test_sentinel_detection(text, expected):
    assert _has_sentinel(text) is expected


def test_line_after_closed_fence_is_seen():
    assert _has_sentinel("```\ncode\n```\nRAUF_COMPLETE") is True


def test_longer_closing_fence_closes():
    assert _has_sentinel("```\ncode\n`````\n  RAUF_COMPLETE  ") is True


def test_closing_fence_with_text_does_not_close():
    assert _has_sentinel("```\ncode\n``` more\nRAUF_COMPLETE") is False


def test_process_line_sequence():
    fence = FenceState()
    results = [fence.process_line(line) for line in ["text", "```go", "x := 1", "```", "after"]]
    assert results == [False, True, True, True, False]
    assert fence.in_fence is False


def test_process_line_tracks_marker():
    fence = FenceState()
    assert fence.process_line("~~~~") is True
    assert (fence.marker_char, fence.marker_length) == ("~", 4)
    assert fence.process_line("~~~") is True
    assert fence.in_fence is True
    assert fence.process_line("~~~~") is True
    assert fence.in_fence is False


def test_backtick_info_with_backtick_is_not_fence():
    fence = FenceState()
    assert fence.process_line("``` a`b") is False
    assert fence.in_fence is False