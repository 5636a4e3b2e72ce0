"""Tests for SectionSynthesizer generators and section list edits."""

import pytest

from app.schemas.report_context import (
    ComparisonPatch,
    EnhancementKind,
    InitialReportPatch,
    LayoutPatch,
    ReportContext,
    ReportSection,
    ReportType,
    SectionOperation,
    TimeframePatch,
)
from app.services.section_synthesizer import (
    DEFAULT_SECTION_TITLE,
    SectionSynthesizer,
    next_section_id,
    section_title,
)


@pytest.fixture
def synthesizer():
    return SectionSynthesizer()


@pytest.fixture
def context():
    ctx = ReportContext(id="ctx_000001", conversation_id="c1", base_query="Analyze AAPL")
    ctx.state.report_type = ReportType.SINGLE
    ctx.state.assets = ["AAPL"]
    ctx.state.sections = [ReportSection(id="main-analysis", title="Main Analysis", order=1)]
    return ctx


@pytest.mark.parametrize(
    "report_type, prompt, section_id",
    [
        (ReportType.SINGLE, "Analyze AAPL", "main-analysis"),
        (ReportType.COMPARISON, "Compare AAPL vs MSFT", "comparison-table"),
        (ReportType.PORTFOLIO, "portfolio of AAPL and JPM", "portfolio-overview"),
        (ReportType.SECTOR, "sector view for NVDA", "sector-overview"),
        (ReportType.MARKET, "market overview", "market-overview"),
    ],
)
def test_generate_initial_section_ids(synthesizer, report_type, prompt, section_id):
    empty = ReportContext(id="ctx_000002", conversation_id="c2", base_query=prompt)
    result = synthesizer.generate_initial(empty, prompt, report_type)
    assert [op.section_id for op in result.operations] == [section_id]
    assert isinstance(result.patch, InitialReportPatch)
    assert result.patch.report_type == report_type
    assert result.patch.sections[0].content == result.operations[0].content


def test_generate_initial_is_deterministic(synthesizer):
    empty = ReportContext(id="ctx_000002", conversation_id="c2", base_query="Analyze MSFT")
    first = synthesizer.generate_initial(empty, "Analyze MSFT", ReportType.SINGLE)
    second = synthesizer.generate_initial(empty, "Analyze MSFT", ReportType.SINGLE)
    assert first.operations == second.operations
    assert first.prices == {"MSFT": second.prices["MSFT"]}


def test_indian_stock_uses_rupee(synthesizer):
    empty = ReportContext(id="ctx_000002", conversation_id="c2", base_query="Analyze TCS")
    result = synthesizer.generate_initial(empty, "Analyze TCS", ReportType.SINGLE)
    assert "₹" in result.operations[0].content


def test_technical_analysis_canvas_uses_section_id(synthesizer, context):
    result = synthesizer.generate_enhancement(context, "add RSI", EnhancementKind.ADD_TECHNICAL, counter=2)
    op = result.operations[0]
    assert op.section_id == "technical-analysis"
    assert 'id="technical-analysis-chart"' in op.content


def test_repeated_enhancement_gets_counter_suffix(synthesizer, context):
    context.state.sections.append(ReportSection(id="technical-analysis", title="T", order=2))
    result = synthesizer.generate_enhancement(context, "more RSI", EnhancementKind.ADD_TECHNICAL, counter=4)
    assert result.operations[0].section_id == "technical-analysis-4"
    assert section_title("technical-analysis-4") == "Technical Analysis"


def test_comparison_merges_assets(synthesizer, context):
    result = synthesizer.generate_enhancement(
        context, "Compare with MSFT and AAPL", EnhancementKind.ADD_COMPARISON, counter=2
    )
    assert isinstance(result.patch, ComparisonPatch)
    assert result.patch.assets == ["AAPL", "MSFT"]
    assert result.operations[0].section_id == "comparison-analysis"


def test_timeframe_patch(synthesizer, context):
    result = synthesizer.generate_enhancement(
        context, "show the 5 year history", EnhancementKind.ADD_TIMEFRAME, counter=2
    )
    assert isinstance(result.patch, TimeframePatch)
    assert result.patch.timeframe == "5 Year"


@pytest.mark.parametrize(
    "prompt, layout",
    [("dashboard view", "dashboard"), ("presentation layout", "presentation"), ("classic layout", "standard")],
)
def test_layout_change(synthesizer, context, prompt, layout):
    result = synthesizer.generate_enhancement(context, prompt, EnhancementKind.MODIFY_LAYOUT, counter=2)
    assert result.patch == LayoutPatch(layout=layout)


def test_generic_enhancement_escapes_prompt(synthesizer, context):
    result = synthesizer.generate_enhancement(
        context, "<script>x</script>", EnhancementKind.GENERIC, counter=2
    )
    assert "<script>" not in result.operations[0].content
    assert "&lt;script&gt;" in result.operations[0].content


def test_unknown_names_get_generic_title():
    assert section_title("something-else") == DEFAULT_SECTION_TITLE


def test_next_section_id_skips_taken():
    taken = {"predictions", "predictions-3"}
    assert next_section_id("risk-analysis", 3, taken) == "risk-analysis"
    assert next_section_id("predictions", 3, taken) == "predictions-3-2"


def test_insert_section_at_position_shifts_later_sections(synthesizer, context):
    context.state.sections.append(ReportSection(id="risk-analysis", title="Risk", order=2))
    result = synthesizer.insert_section(context, "analyst notes", counter=2, position=2, title="Analyst Notes")
    ordered = [(s.id, s.order) for s in result.patch.sections]
    assert ordered == [("main-analysis", 1), ("analyst-notes", 2), ("risk-analysis", 3)]
    # the context itself is untouched
    assert [s.order for s in context.state.sections] == [1, 2]


def test_insert_section_past_end_appends(synthesizer, context):
    result = synthesizer.insert_section(context, "closing notes", counter=2, position=10)
    assert result.operations[0].order == 2
    assert result.patch.sections[-1].id == "custom-section"


def test_apply_operations_remove_and_update(synthesizer, context):
    sections = synthesizer.apply_operations(
        context,
        [
            SectionOperation(section_id="main-analysis", action="update", content="<p>x</p>"),
            SectionOperation(section_id="ghost", action="remove"),
        ],
    )
    assert [s.content for s in sections] == ["<p>x</p>"]
    sections = synthesizer.apply_operations(
        context, [SectionOperation(section_id="main-analysis", action="remove")]
    )
    assert sections == []


def test_apply_operations_leaves_operations_unchanged(synthesizer, context):
    operation = SectionOperation(section_id="notes", action="add", content="<p>n</p>")
    sections = synthesizer.apply_operations(context, [operation])
    assert operation.order is None
    assert [(s.id, s.order) for s in sections] == [("main-analysis", 1), ("notes", 2)]


def test_enhancement_adds_carry_their_order(synthesizer, context):
    context.state.sections.append(ReportSection(id="risk-analysis", title="Risk", order=4))
    result = synthesizer.generate_enhancement(
        context, "Add technical indicators", EnhancementKind.ADD_TECHNICAL, counter=2
    )
    assert result.operations[0].order == 5
    assert result.patch.sections[-1].order == 5
