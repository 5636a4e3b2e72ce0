"""Tests for the generation prompt contract and block parsing."""

import json

from app.schemas.report_context import (
    Enhancement,
    GeneratedBlock,
    ReportContext,
    ReportSection,
    ReportType,
)
from app.services.enhancement_prompt import (
    BLOCK_END,
    BLOCK_START,
    blocks_to_operations,
    build_prompt,
    generate_minified_context,
    parse_enhancement_blocks,
)


def _block(payload) -> str:
    body = payload if isinstance(payload, str) else json.dumps(payload)
    return f"{BLOCK_START}\n{body}\n{BLOCK_END}"


def _context() -> ReportContext:
    context = ReportContext(id="ctx_000001", conversation_id="c1", base_query="Analyze AAPL")
    context.state.report_type = ReportType.SINGLE
    context.state.assets = ["AAPL"]
    context.state.sections = [ReportSection(id="main-analysis", title="Main Analysis", order=1)]
    context.data_cache.prices = {"AAPL": 178.72, "MSFT": 415.26}
    context.data_cache.metrics = {"price": {"AAPL": 178.72}}
    context.enhancements = [
        Enhancement(id=f"e{n}", prompt=f"request {n}") for n in range(1, 5)
    ]
    return context


def test_minified_context_has_no_whitespace_and_only_tracked_prices():
    minified = generate_minified_context(_context())
    data = json.loads(minified)
    assert " " not in minified.replace("request 4", "")
    assert data["assets"] == ["AAPL"]
    assert data["type"] == "single"
    assert data["lastEnhancement"] == "request 4"
    assert data["key_data"]["prices"] == {"AAPL": 178.72}


def test_build_prompt_lists_last_three_enhancements():
    prompt = build_prompt(_context(), "Add risks")
    assert "- request 1" not in prompt
    for n in (2, 3, 4):
        assert f"- request {n}" in prompt
    assert "New Request: Add risks" in prompt
    assert BLOCK_START in prompt and BLOCK_END in prompt


def test_parse_skips_malformed_blocks():
    output = "\n".join(
        [
            "Here you go:",
            _block({"action": "add", "section": "Dividend History", "content": "<p>d</p>"}),
            _block("{not json"),
            _block({"action": "explode", "section": "x"}),
            _block({"action": "remove", "section": "main-analysis"}),
            "trailing chatter",
        ]
    )
    parsed = parse_enhancement_blocks(output)
    assert parsed.skipped == 2
    assert [b.action for b in parsed.blocks] == ["add", "remove"]


def test_parse_empty_output():
    parsed = parse_enhancement_blocks("")
    assert parsed.blocks == []
    assert parsed.skipped == 0


def test_blocks_to_operations_resolves_titles_and_unknown_targets():
    context = _context()
    blocks = [
        GeneratedBlock(action="update", section="Main Analysis", content="<p>m</p>"),
        GeneratedBlock(action="replace", section="Dividend History", content="<p>d</p>"),
        GeneratedBlock(action="remove", section="ghost"),
        GeneratedBlock(action="add", section="main-analysis", content="<p>again</p>"),
    ]
    ops = blocks_to_operations(context, blocks, counter=5)
    assert [(op.section_id, op.action) for op in ops] == [
        ("main-analysis", "update"),
        ("dividend-history", "add"),
        ("main-analysis-5", "add"),
    ]
    assert ops[1].title == "Dividend History"
    assert [op.order for op in ops] == [None, 2, 3]
