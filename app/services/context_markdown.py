"""Plain markdown rendering of a report context for review and download."""

from __future__ import annotations

import html
import re

from app.schemas.report_context import ContextMarkdown, ContextStats, ReportContext
from app.services.document_assembler import REPORT_TITLES

_TAG = re.compile(r"<[^>]*>")
_BLANK_LINES = re.compile(r"\n\s*\n+")


def strip_tags(markup: str) -> str:
    text = html.unescape(_TAG.sub("", markup or ""))
    lines = (line.strip() for line in text.splitlines())
    return _BLANK_LINES.sub("\n\n", "\n".join(line for line in lines if line)).strip()


def render_context_markdown(context: ReportContext) -> ContextMarkdown:
    state = context.state
    title = REPORT_TITLES.get(state.report_type, "Financial Report")
    parts = [
        f"# {title}\n",
        f"**Query**: {context.base_query}",
        f"**Assets**: {', '.join(state.assets) or 'none'}",
        f"**Timeframe**: {state.timeframe}",
        f"**Version**: {context.metadata.version}",
        f"**Last update**: {context.metadata.last_update.isoformat()}",
        "\n---\n",
    ]

    sections = sorted(state.sections, key=lambda s: s.order)
    if sections:
        parts.append("## Report Sections\n")
        parts.append(f"*{len(sections)} sections*\n")
        for index, section in enumerate(sections, start=1):
            parts.append(f"### {index}. {section.title or 'Untitled Section'}\n")
            parts.append(f"**Type**: {section.kind.value}\n")
            text = strip_tags(section.content)
            if text:
                parts.append(f"{text}\n")
            parts.append("---\n")

    if context.enhancements:
        parts.append("## Enhancements\n")
        for enhancement in context.enhancements:
            changes = "; ".join(enhancement.change_descriptions)
            parts.append(f"- {enhancement.prompt} ({changes})")
        parts.append("")

    parts.append("## Metadata\n")
    parts.append(f"**Tokens Used**: {context.metadata.total_tokens_consumed}\n")
    if context.metadata.compressed:
        parts.append("**Compressed**: yes\n")

    return ContextMarkdown(
        markdown="\n".join(parts),
        stats=ContextStats(
            section_count=len(sections),
            enhancement_count=len(context.enhancements),
            total_tokens=context.metadata.total_tokens_consumed,
        ),
    )
