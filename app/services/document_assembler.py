"""Reassembles a full HTML report from stored sections plus pending operations."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

from app.schemas.report_context import ReportContext, ReportType, SectionOperation

LIVE_START = "<!-- live:start -->"
LIVE_END = "<!-- live:end -->"
_LIVE_REGION = re.compile(re.escape(LIVE_START) + r".*?" + re.escape(LIVE_END), re.DOTALL)

REPORT_TITLES = {
    ReportType.SINGLE: "Stock Analysis",
    ReportType.COMPARISON: "Comparison Report",
    ReportType.PORTFOLIO: "Portfolio Analysis",
    ReportType.SECTOR: "Sector Report",
    ReportType.MARKET: "Market Report",
}

LAYOUT_CLASSES = {
    "standard": "max-w-7xl mx-auto",
    "dashboard": "max-w-7xl mx-auto grid grid-cols-2 gap-6",
    "presentation": "max-w-5xl mx-auto space-y-12",
}

_SHELL_HEAD = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Enhanced Financial Report</title>
    <script src="https://cdn.tailwindcss.com"></script>
    <script src="https://cdn.jsdelivr.net/npm/chart.js"></script>
    <style>
        @import url('https://fonts.googleapis.com/css2?family=Inter:wght@300;400;500;600;700;800&display=swap');
        body { font-family: 'Inter', sans-serif; background: #0A0E1A; color: white; }
        .section-transition { animation: slideIn 0.5s ease-out; }
        @keyframes slideIn {
          from { opacity: 0; transform: translateY(20px); }
          to { opacity: 1; transform: translateY(0); }
        }
    </style>
</head>
"""

_FOOTER = """
    </div>
</body>
</html>"""

# At equal order an added section precedes the existing one.
_ADD_RANK = 0
_EXISTING_RANK = 1


def strip_live_regions(document: str) -> str:
    """Remove the delimited live timestamp regions so documents can be compared."""
    return _LIVE_REGION.sub(LIVE_START + LIVE_END, document)


def render_header(context: ReportContext, now: Optional[datetime] = None) -> str:
    state = context.state
    title = REPORT_TITLES.get(state.report_type, "Market Report")
    assets = ", ".join(state.assets)
    updated = (now or datetime.now(timezone.utc)).strftime("%H:%M:%S UTC")
    return f"""
      <div class="bg-gradient-to-r from-blue-900 to-purple-900 rounded-xl p-6 mb-6">
        <div class="flex justify-between items-center">
          <div>
            <h1 class="text-3xl font-bold text-primary-foreground">{title}</h1>
            <p class="text-muted-foreground mt-2">Assets: {assets}</p>
          </div>
          <div class="text-right">
            <div class="text-sm text-muted-foreground">Version {context.metadata.version}</div>
            <div class="text-sm text-muted-foreground">{len(context.enhancements)} enhancements</div>
            <div class="text-xs text-muted-foreground mt-1">{LIVE_START}Updated: {updated}{LIVE_END}</div>
          </div>
        </div>
      </div>
"""


def _wrap(section_id: str, kind: str, content: str, transition: bool = False) -> str:
    classes = f"report-section section-{kind}"
    if transition:
        classes += " section-transition"
    return f'<section id="{section_id}" class="{classes}">{content}</section>\n'


class DocumentAssembler:
    """Merges a context's stored sections with new operations into one document."""

    def assemble(
        self,
        context: ReportContext,
        operations: Optional[list[SectionOperation]] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """
        Render the document for the (post-update) context.

        replace/update substitute content of an existing section, remove omits
        it, and untouched sections are reproduced verbatim from storage. add
        operations follow the existing sections in synthesis order unless they
        carry an explicit order. Operations naming unknown sections are no-ops.
        """
        operations = operations or []
        added_ids = {op.section_id for op in operations if op.action == "add"}
        overrides: dict[str, SectionOperation] = {}
        for op in operations:
            if op.action != "add":
                overrides[op.section_id] = op

        visible = sorted(
            (s for s in context.state.sections if s.visible),
            key=lambda s: s.order,
        )
        last_order = visible[-1].order if visible else 0
        placed: list[tuple[float, int, int, str]] = []
        for seq, section in enumerate(visible):
            if section.id in added_ids:
                continue
            override = overrides.get(section.id)
            if override is not None and override.action == "remove":
                continue
            if override is not None:
                body = _wrap(section.id, section.kind.value, override.content, transition=True)
            else:
                body = _wrap(section.id, section.kind.value, section.content)
            placed.append((section.order, _EXISTING_RANK, seq, body))

        stored = {s.id: s for s in context.state.sections}
        for seq, op in enumerate(o for o in operations if o.action == "add"):
            existing = stored.get(op.section_id)
            if existing is not None and not existing.visible:
                continue
            order = op.order if op.order is not None else last_order + 1 + seq
            placed.append(
                (order, _ADD_RANK, seq, _wrap(op.section_id, op.kind.value, op.content, transition=True))
            )

        placed.sort(key=lambda item: (item[0], item[1], item[2]))
        container = LAYOUT_CLASSES.get(context.state.layout, LAYOUT_CLASSES["standard"])
        return "".join(
            [
                _SHELL_HEAD,
                f'<body class="p-6 theme-{context.state.theme}">\n',
                f'    <div class="{container}">\n',
                render_header(context, now=now),
                *(body for _, _, _, body in placed),
                _FOOTER,
            ]
        )
