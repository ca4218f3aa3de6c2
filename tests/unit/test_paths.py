"""Field-path interpreter tests."""

import pytest

from parley.adapters.paths import parse_path, rebase_path, resolve, resolve_in_chunk

pytestmark = pytest.mark.unit


class TestParsePath:
    def test_digit_segments_become_indices(self):
        assert parse_path("choices.0.delta.content") == ("choices", 0, "delta", "content")

    def test_empty_path_is_root(self):
        assert parse_path("") == ()

    def test_empty_segments_are_skipped(self):
        assert parse_path("a..b.") == ("a", "b")


class TestResolve:
    chunk = {
        "choices": [{"delta": {"content": "hi", "tool_calls": [{"index": 0}]}}],
        "usage": None,
    }

    def test_walks_mappings_and_lists(self):
        assert resolve(self.chunk, "choices.0.delta.content") == "hi"
        assert resolve(self.chunk, "choices.0.delta.tool_calls.0.index") == 0

    def test_missing_key_yields_none(self):
        assert resolve(self.chunk, "choices.0.delta.reasoning") is None

    def test_out_of_range_index_yields_none(self):
        assert resolve(self.chunk, "choices.3.delta") is None

    def test_type_mismatch_yields_none(self):
        assert resolve(self.chunk, "choices.delta") is None
        assert resolve(self.chunk, "choices.0.delta.content.x") is None
        assert resolve("text", "a") is None

    def test_digit_key_on_mapping(self):
        assert resolve({"0": {"a": 1}}, "0.a") == 1

    def test_accepts_pre_parsed_tokens(self):
        assert resolve(self.chunk, ("choices", 0, "delta", "content")) == "hi"


class TestResolveInChunk:
    def test_prefers_chunk_root(self):
        chunk = {"delta": {"content": "root"}, "choices": [{"delta": {"content": "c"}}]}
        assert resolve_in_chunk(chunk, "delta.content") == "root"

    def test_falls_back_to_first_choice(self):
        chunk = {"choices": [{"delta": {"content": "c"}}]}
        assert resolve_in_chunk(chunk, "delta.content") == "c"

    def test_no_choices_yields_none(self):
        assert resolve_in_chunk({"choices": []}, "delta.content") is None
        assert resolve_in_chunk([], "delta.content") is None


def test_rebase_path_swaps_leading_prefix_only():
    assert rebase_path("delta.content", "delta.", "message.") == "message.content"
    assert rebase_path("output.delta.content", "delta.", "message.") == (
        "output.delta.content"
    )
