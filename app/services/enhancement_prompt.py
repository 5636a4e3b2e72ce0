"""
Generation prompt contract for report enhancements.

build_prompt summarizes a context for an upstream generation call and asks
for delimited blocks; parse_enhancement_blocks reads them back. Parsed blocks
become ordinary SectionOperations so reassembly stays uniform.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, List

from pydantic import ValidationError

from app.infra.logging_config import get_logger
from app.schemas.report_context import (
    GeneratedBlock,
    ReportContext,
    SectionKind,
    SectionOperation,
)
from app.services.section_synthesizer import next_section_id, slugify

logger = get_logger("enhancement_prompt")

BLOCK_START = "[ENHANCEMENT_START]"
BLOCK_END = "[ENHANCEMENT_END]"
_BLOCK_PATTERN = re.compile(
    re.escape(BLOCK_START) + r"(.*?)" + re.escape(BLOCK_END), re.DOTALL
)

RECENT_ENHANCEMENTS = 3
KEY_METRICS_LIMIT = 5


@dataclass
class ParsedBlocks:
    """Blocks recovered from generation output; skipped counts malformed ones."""

    blocks: List[GeneratedBlock] = field(default_factory=list)
    skipped: int = 0


def extract_key_data(context: ReportContext) -> dict[str, Any]:
    """Cached prices for tracked assets and the first few tracked metrics."""
    key_data: dict[str, Any] = {}
    state = context.state
    cache = context.data_cache
    if state.assets:
        key_data["prices"] = {
            asset: cache.prices[asset] for asset in state.assets if asset in cache.prices
        }
    if state.metrics:
        key_data["metrics"] = {
            metric: cache.metrics[metric]
            for metric in state.metrics[:KEY_METRICS_LIMIT]
            if cache.metrics.get(metric)
        }
    return key_data


def generate_minified_context(context: ReportContext) -> str:
    last_prompt = context.enhancements[-1].prompt if context.enhancements else None
    minified = {
        "assets": context.state.assets,
        "type": context.state.report_type.value if context.state.report_type else None,
        "sections": [section.kind.value for section in context.state.sections],
        "lastEnhancement": last_prompt,
        "key_data": extract_key_data(context),
    }
    return json.dumps(minified, separators=(",", ":"), default=str)


def build_prompt(context: ReportContext, new_prompt: str) -> str:
    """Prompt for an upstream generation call that must answer in delimited blocks."""
    previous = "\n".join(
        f"- {enhancement.prompt}"
        for enhancement in context.enhancements[-RECENT_ENHANCEMENTS:]
    )
    return f"""
Current Report Context:
{generate_minified_context(context)}

Previous Enhancements:
{previous}

New Request: {new_prompt}

Instructions:
1. Build upon the existing report
2. Add new sections or enhance existing ones
3. Maintain consistency with previous data
4. Return only the new/updated sections
5. Use this format for response:

{BLOCK_START}
{{
  "action": "add" | "update" | "replace" | "remove",
  "section": "section_name",
  "content": "HTML content for section"
}}
{BLOCK_END}
"""


def parse_enhancement_blocks(output: str) -> ParsedBlocks:
    """
    Extract every delimited block from free-form generation output.

    A block that is not valid JSON or does not match the contract is logged
    and counted as skipped; the remaining blocks are still returned.
    """
    result = ParsedBlocks()
    for match in _BLOCK_PATTERN.finditer(output or ""):
        raw = match.group(1).strip()
        try:
            block = GeneratedBlock.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            result.skipped += 1
            logger.warning("Skipping malformed enhancement block: %s", e)
            continue
        result.blocks.append(block)
    return result


def blocks_to_operations(
    context: ReportContext,
    blocks: List[GeneratedBlock],
    counter: int,
) -> List[SectionOperation]:
    """
    Map generated blocks onto section operations for this context.

    A block names a section by id or title. update/replace of a section the
    report does not have becomes an add; remove of an unknown section is dropped.
    """
    by_title = {section.title.lower(): section.id for section in context.state.sections}
    known = set(context.section_ids())
    taken = set(known)
    next_order = max((section.order for section in context.state.sections), default=0)
    operations: List[SectionOperation] = []
    for block in blocks:
        name = block.section.strip()
        target = name if name in known else by_title.get(name.lower())
        if target is None and slugify(name) in known:
            target = slugify(name)

        if block.action == "remove":
            if target is not None:
                operations.append(SectionOperation(section_id=target, action="remove"))
            continue

        if target is not None and block.action in ("update", "replace"):
            operations.append(
                SectionOperation(
                    section_id=target, action=block.action, content=block.content
                )
            )
            continue

        section_id = next_section_id(slugify(name), counter, taken)
        taken.add(section_id)
        next_order += 1
        operations.append(
            SectionOperation(
                section_id=section_id,
                action="add",
                content=block.content,
                kind=SectionKind.CUSTOM,
                title=name,
                order=next_order,
            )
        )
    return operations
