"""EnhancementEngine: the enhance() entry point over store, classifier, synthesizer and assembler."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from app.core.intent import classify
from app.core.reference_data import ReferenceData
from app.schemas.report_context import (
    Enhancement,
    EnhancementKind,
    EnhancementRequest,
    EnhancementResponse,
    ReportContext,
    ReportType,
    SectionKind,
    SectionOperation,
)
from app.services.context_store import ContextStore
from app.services.document_assembler import DocumentAssembler
from app.services.enhancement_prompt import (
    ParsedBlocks,
    blocks_to_operations,
    build_prompt,
    parse_enhancement_blocks,
)
from app.services.section_synthesizer import SectionSynthesizer, SynthesisResult

logger = logging.getLogger(__name__)


def _describe(operations: List[SectionOperation]) -> List[str]:
    return [f"{op.action}: {op.section_id}" for op in operations]


class EnhancementEngine:
    """
    Builds and incrementally enhances per-conversation reports.

    Stateless apart from the injected store; one engine per store.
    """

    def __init__(
        self,
        store: ContextStore,
        synthesizer: Optional[SectionSynthesizer] = None,
        assembler: Optional[DocumentAssembler] = None,
        reference_data: Optional[ReferenceData] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.synthesizer = synthesizer or SectionSynthesizer(reference_data)
        self.assembler = assembler or DocumentAssembler()
        self._clock = clock

    def enhance(self, request: EnhancementRequest) -> Optional[EnhancementResponse]:
        """
        Create the first report for a conversation or enhance the existing one.

        Returns None when the context is evicted before the change is stored.
        """
        context = self.store.get(request.conversation_id)
        if context is None or not context.enhancements:
            if context is None:
                context = self.store.create(request.conversation_id, request.prompt)
            return self._initial_report(context, request.prompt)
        return self._enhance_report(context, request.prompt)

    def apply_generated(
        self, conversation_id: str, prompt: str, output: str
    ) -> Optional[tuple[EnhancementResponse, ParsedBlocks]]:
        """
        Feed externally generated text back in as section operations.

        Returns None when the conversation has no context or loses it mid-call.
        """
        context = self.store.get(conversation_id)
        if context is None or not context.enhancements:
            return None
        parsed = parse_enhancement_blocks(output)
        if parsed.skipped:
            logger.info(
                "Skipped %d malformed blocks for conversation %s",
                parsed.skipped,
                conversation_id,
            )
        counter = context.metadata.version + 1
        operations = blocks_to_operations(context, parsed.blocks, counter)
        result = SynthesisResult(
            operations=operations,
            patch=self.synthesizer.build_sections_patch(context, operations),
            change_descriptions=_describe(operations),
        )
        response = self._commit(context, prompt or "generated enhancement", result)
        if response is None:
            return None
        return response, parsed

    def insert_section(
        self,
        conversation_id: str,
        prompt: str,
        position: Optional[int] = None,
        kind: SectionKind = SectionKind.CUSTOM,
        title: Optional[str] = None,
        content: Optional[str] = None,
    ) -> Optional[EnhancementResponse]:
        context = self.store.get(conversation_id)
        if context is None or not context.enhancements:
            return None
        result = self.synthesizer.insert_section(
            context,
            prompt,
            counter=context.metadata.version + 1,
            position=position,
            kind=kind,
            title=title,
            content=content,
        )
        return self._commit(context, prompt, result)

    def remove_section(
        self, conversation_id: str, section_id: str
    ) -> Optional[EnhancementResponse]:
        context = self.store.get(conversation_id)
        if context is None or context.find_section(section_id) is None:
            return None
        operation = SectionOperation(section_id=section_id, action="remove")
        result = SynthesisResult(
            operations=[operation],
            patch=self.synthesizer.build_sections_patch(context, [operation]),
            change_descriptions=_describe([operation]),
        )
        return self._commit(context, f"Remove section {section_id}", result)

    def render_document(self, conversation_id: str) -> Optional[str]:
        context = self.store.get(conversation_id)
        if context is None:
            return None
        return self.assembler.assemble(context, [], now=self._now())

    def build_prompt(self, conversation_id: str, prompt: str) -> Optional[str]:
        context = self.store.get(conversation_id)
        if context is None:
            return None
        return build_prompt(context, prompt)

    def _initial_report(
        self, context: ReportContext, prompt: str
    ) -> Optional[EnhancementResponse]:
        report_type = classify(prompt, has_existing_context=False)
        if not isinstance(report_type, ReportType):
            report_type = ReportType.SINGLE
        result = self.synthesizer.generate_initial(context, prompt, report_type)
        enhancement = Enhancement(
            id=self._enhancement_id(context, 1),
            prompt=prompt,
            change_descriptions=result.change_descriptions,
            timestamp=self._now(),
            estimated_token_cost=len(prompt) * 2,
            touched_section_ids=[op.section_id for op in result.operations],
        )
        if self.store.initialize(context.conversation_id, enhancement, result.patch) is None:
            logger.warning(
                "Context for conversation %s is gone; initial report dropped",
                context.conversation_id,
            )
            return None
        self.store.cache_market_data(context.conversation_id, result.prices, result.metrics)
        document = self.assembler.assemble(context, result.operations, now=self._now())
        self.store.record_document_size(context.conversation_id, len(document))
        logger.info(
            "Initial %s report for conversation %s with assets %s",
            report_type.value,
            context.conversation_id,
            context.state.assets,
        )
        return EnhancementResponse(
            document=document,
            context=context,
            estimated_tokens=enhancement.estimated_token_cost,
            operations=result.operations,
        )

    def _enhance_report(
        self, context: ReportContext, prompt: str
    ) -> Optional[EnhancementResponse]:
        kind = classify(prompt, has_existing_context=True)
        if not isinstance(kind, EnhancementKind):
            kind = EnhancementKind.GENERIC
        result = self.synthesizer.generate_enhancement(
            context, prompt, kind, counter=context.metadata.version + 1
        )
        logger.info(
            "Enhancement %s for conversation %s", kind.value, context.conversation_id
        )
        return self._commit(context, prompt, result)

    def _commit(
        self, context: ReportContext, prompt: str, result: SynthesisResult
    ) -> Optional[EnhancementResponse]:
        """
        Update the store, then assemble from the post-update context.

        The token cost is taken from a preview of the post-update document so
        the enhancement is complete when the store appends it. Returns None
        when the context disappeared before the update landed.
        """
        prompt_text = build_prompt(context, prompt)
        counter = context.metadata.version + 1
        preview = self._preview(context, prompt, result)
        enhancement = Enhancement(
            id=self._enhancement_id(context, counter),
            prompt=prompt,
            change_descriptions=result.change_descriptions
            or _describe(result.operations),
            timestamp=self._now(),
            estimated_token_cost=len(prompt_text) + len(preview) // 10,
            touched_section_ids=[op.section_id for op in result.operations],
        )
        updated = self.store.update(context.conversation_id, enhancement, result.patch)
        if updated is None:
            logger.warning(
                "Context for conversation %s was evicted mid-enhancement; %s dropped",
                context.conversation_id,
                enhancement.id,
            )
            return None
        if result.prices or result.metrics:
            self.store.cache_market_data(
                updated.conversation_id, result.prices, result.metrics
            )
        document = self.assembler.assemble(updated, result.operations, now=self._now())
        self.store.record_document_size(updated.conversation_id, len(document))
        return EnhancementResponse(
            document=document,
            context=updated,
            estimated_tokens=enhancement.estimated_token_cost,
            operations=result.operations,
        )

    def _preview(
        self, context: ReportContext, prompt: str, result: SynthesisResult
    ) -> str:
        draft = context.model_copy(deep=True)
        draft.state = result.patch.apply(draft.state)
        draft.metadata.version += 1
        draft.enhancements.append(Enhancement(id="preview", prompt=prompt))
        return self.assembler.assemble(draft, result.operations, now=self._now())

    def _enhancement_id(self, context: ReportContext, counter: int) -> str:
        return f"{context.id}-enh-{counter:04d}"

    def _now(self) -> datetime:
        return self._clock() if self._clock else datetime.now(timezone.utc)
