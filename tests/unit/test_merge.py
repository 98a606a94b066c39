"""Tests for overlap-aware streaming merge and the streaming session."""

import pytest

from chatlog._types import MessageType, StreamKind
from chatlog.merge import StreamingMerger, merge_streaming_text

PAIRS = [
    ("", ""),
    ("", "abc"),
    ("abc", ""),
    ("Hello wor", "world!"),
    ("Hel", "Hello"),
    ("Hello", "Hel"),
    ("abc", "xyz"),
    ("aaaa", "aaab"),
    ("the end", "end of story"),
    ("abab", "babab"),
]


class TestMergeStreamingText:
    def test_overlap(self):
        """A suffix of existing equal to a prefix of delta is only kept once."""
        assert merge_streaming_text("Hello wor", "world!") == "Hello world!"

    def test_full_resend(self):
        assert merge_streaming_text("Hel", "Hello") == "Hello"

    def test_duplicate_fragment_is_noop(self):
        assert merge_streaming_text("Hello", "Hel") == "Hello"

    def test_no_overlap_concatenates(self):
        assert merge_streaming_text("abc", "xyz") == "abcxyz"

    def test_longest_overlap_wins(self):
        assert merge_streaming_text("abab", "babab") == "ababab"

    @pytest.mark.parametrize("existing,delta", PAIRS)
    def test_empty_identities(self, existing, delta):
        assert merge_streaming_text(existing, "") == existing
        assert merge_streaming_text("", delta) == delta

    @pytest.mark.parametrize("existing,delta", PAIRS)
    def test_length_bounds(self, existing, delta):
        merged = merge_streaming_text(existing, delta)
        assert max(len(existing), len(delta)) <= len(merged) <= len(existing) + len(delta)


class TestStreamingMerger:
    def test_same_kind_appends(self):
        merger = StreamingMerger()
        first = merger.append_delta(StreamKind.ASSISTANT, "Hello ")
        second = merger.append_delta(StreamKind.ASSISTANT, "world")
        assert first.started is True
        assert second.started is False
        assert second.finalized is None
        assert merger.session.text == "Hello world"

    def test_absent_item_id_appends_to_identified_session(self):
        merger = StreamingMerger()
        merger.append_delta(StreamKind.ASSISTANT, "Hi", "item-1")
        result = merger.append_delta(StreamKind.ASSISTANT, " there")
        assert result.finalized is None
        assert merger.session.text == "Hi there"
        assert merger.session.item_id == "item-1"

    def test_item_id_change_finalizes(self):
        merger = StreamingMerger()
        merger.append_delta(StreamKind.ASSISTANT, "First", "item-1")
        result = merger.append_delta(StreamKind.ASSISTANT, "Second", "item-2")
        assert result.finalized.content == "First"
        assert result.started is True
        assert merger.session.text == "Second"

    def test_kind_change_finalizes(self):
        merger = StreamingMerger()
        merger.append_delta(StreamKind.REASONING, "pondering")
        result = merger.append_delta(StreamKind.ASSISTANT, "Answer")
        assert result.finalized.type == MessageType.REASONING
        assert merger.session.kind == StreamKind.ASSISTANT

    def test_kind_change_with_shared_item_id_finalizes(self):
        merger = StreamingMerger()
        merger.append_delta(StreamKind.REASONING, "pondering", "item-1")
        result = merger.append_delta(StreamKind.ASSISTANT, "Answer", "item-1")
        assert result.finalized.type == MessageType.REASONING
        assert result.finalized.content == "pondering"
        assert result.started is True
        assert merger.session.kind == StreamKind.ASSISTANT
        assert merger.session.text == "Answer"

    def test_assistant_finalize_renders_and_memoizes(self):
        merger = StreamingMerger(markup=lambda text: f"<p>{text}</p>")
        merger.append_delta(StreamKind.ASSISTANT, "Done.")
        message = merger.finalize()
        assert message.type == MessageType.ASSISTANT
        assert message.rendered == "<p>Done.</p>"
        assert merger.last_finalized_text == "Done."
        assert merger.session is None

    def test_reasoning_finalize_strips_leading_blank_lines(self):
        merger = StreamingMerger()
        merger.append_delta(StreamKind.REASONING, "\n\n  \nThinking hard")
        message = merger.finalize()
        assert message.content == "Thinking hard"

    def test_blank_session_finalizes_to_nothing(self):
        merger = StreamingMerger()
        merger.append_delta(StreamKind.REASONING, "\n \n")
        assert merger.finalize() is None

    def test_finalize_without_session(self):
        assert StreamingMerger().finalize() is None

    def test_duplicate_suppressed_once(self):
        """Only one complete message is suppressed per finalize."""
        merger = StreamingMerger()
        merger.append_delta(StreamKind.ASSISTANT, "Same text")
        merger.finalize()
        assert merger.consume_duplicate("Same text") is True
        assert merger.consume_duplicate("Same text") is False

    def test_different_text_clears_memo(self):
        merger = StreamingMerger()
        merger.append_delta(StreamKind.ASSISTANT, "One")
        merger.finalize()
        assert merger.consume_duplicate("Two") is False
        assert merger.last_finalized_text == ""

    def test_matches_open_assistant_trims(self):
        merger = StreamingMerger()
        merger.append_delta(StreamKind.ASSISTANT, "Fixed it.\n")
        assert merger.matches_open_assistant("Fixed it.") is True
        assert merger.matches_open_assistant("Something else") is False
