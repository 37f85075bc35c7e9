"""Unit tests for block classification and chunk flattening."""

import pytest

from perplexity_client.streaming.blocks import (
    AskTextBlock,
    GenericBlock,
    PlanBlock,
    WebResultsBlock,
    classify_block,
    classify_blocks,
    flatten_chunks,
)


class TestFlattenChunks:
    """Tests for flatten_chunks."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, []),
            ("a", ["a"]),
            (["a", "b"], ["a", "b"]),
            (["a", ["b", ["c", ["d"]]]], ["a", "b", "c", "d"]),
            ([1, True, None, "x"], ["1", "true", "x"]),
            ({"k": [1, 2]}, ['{"k":[1,2]}']),
            ([[], [[]]], []),
            (["é"], ["é"]),
        ],
    )
    def test_flatten(self, value, expected):
        """Test depth-first flattening with non-strings JSON-stringified."""
        assert flatten_chunks(value) == expected

    def test_flatten_preserves_total_content(self):
        """Test that flattening keeps left-to-right order of every leaf."""
        value = ["The ", ["quick ", ["brown "]], "fox"]
        assert "".join(flatten_chunks(value)) == "The quick brown fox"


class TestClassifyBlock:
    """Tests for classify_block."""

    def test_ask_text(self):
        """Test classification of an ask_text block."""
        block = classify_block({
            "intended_usage": "ask_text",
            "markdown_block": {"progress": "in_progress", "chunks": ["a", ["b"]], "chunk_starting_offset": 3},
        })
        assert isinstance(block, AskTextBlock)
        assert block.chunks == ["a", "b"]
        assert block.chunk_starting_offset == 3
        assert block.text == "ab"

    def test_ask_text_answer_preferred(self):
        """Test that an explicit answer wins over the joined chunks."""
        block = classify_block({
            "intended_usage": "ask_text",
            "markdown_block": {"chunks": ["a"], "answer": "full answer"},
        })
        assert block.text == "full answer"

    def test_web_results(self):
        """Test classification of a web_results block."""
        block = classify_block({
            "intended_usage": "web_results",
            "web_result_block": {"progress": "done", "web_results": [{"url": "https://a"}, {"name": "no url"}]},
        })
        assert isinstance(block, WebResultsBlock)
        assert block.urls == ["https://a"]

    @pytest.mark.parametrize("kind", ["plan", "pro_search_steps"])
    def test_plan_kinds_share_shape(self, kind):
        """Test that plan and pro_search_steps both map to PlanBlock."""
        block = classify_block({
            "intended_usage": kind,
            "plan_block": {"progress": "done", "goals": [{"id": "1", "description": "Look up"}]},
        })
        assert isinstance(block, PlanBlock)
        assert block.kind == kind
        assert block.goal_descriptions == ["Look up"]
        assert block.steps == []

    @pytest.mark.parametrize(
        "raw",
        [
            {"intended_usage": "ask_text"},
            {"intended_usage": "ask_text", "markdown_block": None},
            {"intended_usage": "web_results", "plan_block": {"goals": []}},
            {"intended_usage": "plan", "markdown_block": {"chunks": []}},
            {"intended_usage": "something_new", "payload": 1},
            {"markdown_block": {"chunks": ["x"]}},
        ],
    )
    def test_missing_companion_or_unknown_kind_is_generic(self, raw):
        """Test that discriminant and companion are both required."""
        block = classify_block(raw)
        assert isinstance(block, GenericBlock)
        assert block.raw == raw

    def test_non_dict_is_generic(self):
        """Test that a non-object block is wrapped, not rejected."""
        block = classify_block("oops")
        assert isinstance(block, GenericBlock)
        assert block.raw == {"value": "oops"}

    def test_to_dict_is_a_copy(self):
        """Test that to_dict does not expose the original object."""
        raw = {"intended_usage": "plan", "plan_block": {"goals": []}}
        data = classify_block(raw).to_dict()
        data["plan_block"]["goals"].append("x")
        assert raw["plan_block"]["goals"] == []

    def test_classify_blocks_accepts_single_object(self):
        """Test that a bare block is treated as a one-element list."""
        blocks = classify_blocks({"intended_usage": "x"})
        assert len(blocks) == 1
        assert classify_blocks(None) == []
