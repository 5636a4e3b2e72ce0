"""Pydantic schemas for report contexts, sections, enhancements and state patches."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_METRICS = ["price", "change", "volume", "marketCap"]


class ReportType(str, Enum):
    """Kind of report produced by the first prompt of a conversation."""

    SINGLE = "single"
    COMPARISON = "comparison"
    PORTFOLIO = "portfolio"
    SECTOR = "sector"
    MARKET = "market"


class EnhancementKind(str, Enum):
    """Kind of incremental change requested once a report exists."""

    ADD_TECHNICAL = "add_technical"
    ADD_COMPARISON = "add_comparison"
    ADD_TIMEFRAME = "add_timeframe"
    ADD_PREDICTIONS = "add_predictions"
    ADD_RISKS = "add_risks"
    MODIFY_LAYOUT = "modify_layout"
    GENERIC = "generic"


class SectionKind(str, Enum):
    CHART = "chart"
    TABLE = "table"
    TEXT = "text"
    METRIC = "metric"
    INSIGHT = "insight"
    CUSTOM = "custom"


SectionAction = Literal["add", "update", "replace", "remove"]
Theme = Literal["light", "dark"]
Layout = Literal["standard", "dashboard", "presentation"]


# -----------------------------------------------------------------------------
# Context records
# -----------------------------------------------------------------------------


class ReportSection(BaseModel):
    """Addressable, ordered fragment of the document. content is stored markup."""

    id: str
    kind: SectionKind = SectionKind.CUSTOM
    title: str
    content: str = ""
    order: int
    visible: bool = True


class Enhancement(BaseModel):
    """One user-driven change, appended to the context log and never edited."""

    model_config = ConfigDict(frozen=True)

    id: str
    prompt: str
    change_descriptions: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    estimated_token_cost: int = 0
    touched_section_ids: list[str] = Field(default_factory=list)


class DataCache(BaseModel):
    prices: dict[str, float] = Field(default_factory=dict)
    metrics: dict[str, dict[str, Any]] = Field(default_factory=dict)
    charts: dict[str, Any] = Field(default_factory=dict)
    computed: dict[str, Any] = Field(default_factory=dict)


class ContextMetadata(BaseModel):
    version: int = 1
    total_tokens_consumed: int = 0
    last_update: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    document_size: int = 0
    compressed: bool = False


class ReportState(BaseModel):
    assets: list[str] = Field(default_factory=list)
    metrics: list[str] = Field(default_factory=lambda: list(DEFAULT_METRICS))
    timeframe: str = "1D"
    report_type: Optional[ReportType] = None  # None until the first prompt is classified
    sections: list[ReportSection] = Field(default_factory=list)
    theme: Theme = "dark"
    layout: Layout = "standard"


class ReportContext(BaseModel):
    """Per-conversation report state and enhancement history."""

    id: str
    conversation_id: str
    base_query: str
    state: ReportState = Field(default_factory=ReportState)
    enhancements: list[Enhancement] = Field(default_factory=list)
    data_cache: DataCache = Field(default_factory=DataCache)
    metadata: ContextMetadata = Field(default_factory=ContextMetadata)

    def section_ids(self) -> list[str]:
        return [section.id for section in self.state.sections]

    def find_section(self, section_id: str) -> Optional[ReportSection]:
        for section in self.state.sections:
            if section.id == section_id:
                return section
        return None


# -----------------------------------------------------------------------------
# Section operations (transient, produced by synthesis, consumed by assembly)
# -----------------------------------------------------------------------------


class SectionOperation(BaseModel):
    section_id: str
    action: SectionAction
    content: str = ""
    order: Optional[int] = None
    kind: SectionKind = SectionKind.CUSTOM
    title: Optional[str] = None


# -----------------------------------------------------------------------------
# State patches: one named variant per kind of change
# -----------------------------------------------------------------------------


class _StatePatchBase(BaseModel):
    def apply(self, state: ReportState) -> ReportState:
        """Return a new state with each patched top-level key replaced wholesale."""
        patch = self.model_copy(deep=True)
        updates = {
            name: getattr(patch, name)
            for name in type(self).model_fields
            if name != "kind"
        }
        return state.model_copy(update=updates)


class InitialReportPatch(_StatePatchBase):
    kind: Literal["initial"] = "initial"
    report_type: ReportType
    assets: list[str]
    timeframe: str
    sections: list[ReportSection]


class SectionsPatch(_StatePatchBase):
    kind: Literal["sections"] = "sections"
    sections: list[ReportSection]


class ComparisonPatch(_StatePatchBase):
    kind: Literal["comparison"] = "comparison"
    assets: list[str]
    sections: list[ReportSection]


class TimeframePatch(_StatePatchBase):
    kind: Literal["timeframe"] = "timeframe"
    timeframe: str
    sections: list[ReportSection]


class LayoutPatch(_StatePatchBase):
    kind: Literal["layout"] = "layout"
    layout: Layout


StatePatch = Annotated[
    Union[InitialReportPatch, SectionsPatch, ComparisonPatch, TimeframePatch, LayoutPatch],
    Field(discriminator="kind"),
]


# -----------------------------------------------------------------------------
# Engine request / response
# -----------------------------------------------------------------------------


class EnhancementRequest(BaseModel):
    conversation_id: str = Field(min_length=1)
    prompt: str = ""
    current_document: Optional[str] = None


class EnhancementResponse(BaseModel):
    document: str
    context: ReportContext
    estimated_tokens: int
    operations: list[SectionOperation]


class GeneratedBlock(BaseModel):
    """One delimited block emitted by a generation call."""

    action: SectionAction
    section: str = Field(min_length=1)
    content: str = ""


class ContextSummary(BaseModel):
    """Context row for list endpoints."""

    conversation_id: str
    context_id: str
    base_query: str
    report_type: Optional[ReportType] = None
    assets: list[str]
    section_count: int
    enhancement_count: int
    version: int
    last_update: datetime
    compressed: bool

    @classmethod
    def from_context(cls, context: ReportContext) -> ContextSummary:
        return cls(
            conversation_id=context.conversation_id,
            context_id=context.id,
            base_query=context.base_query,
            report_type=context.state.report_type,
            assets=list(context.state.assets),
            section_count=len(context.state.sections),
            enhancement_count=len(context.enhancements),
            version=context.metadata.version,
            last_update=context.metadata.last_update,
            compressed=context.metadata.compressed,
        )


class SectionInsertRequest(BaseModel):
    prompt: str = Field(min_length=1)
    position: Optional[int] = Field(default=None, ge=1)
    kind: SectionKind = SectionKind.CUSTOM
    title: Optional[str] = None
    content: Optional[str] = None


class GeneratedOutputRequest(BaseModel):
    prompt: str = ""
    output: str


class GeneratePromptRequest(BaseModel):
    prompt: str = Field(min_length=1)


class ImportContextRequest(BaseModel):
    serialized: str = Field(min_length=1)


class EvictRequest(BaseModel):
    max_age_minutes: Optional[int] = Field(default=None, ge=0)


class GeneratedOutputResponse(BaseModel):
    """Result of applying generation output; skipped counts malformed blocks."""

    response: EnhancementResponse
    applied_blocks: int
    skipped_blocks: int


class ContextStats(BaseModel):
    section_count: int
    enhancement_count: int
    total_tokens: int


class ContextMarkdown(BaseModel):
    markdown: str
    stats: ContextStats
