"""ContextStore: owns per-conversation report contexts, compaction, eviction and export."""

from __future__ import annotations

import re
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, List, Optional

from pydantic import ValidationError

from app.schemas.report_context import Enhancement, ReportContext, StatePatch

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONTEXT_SIZE = 5000
DEFAULT_ENHANCEMENT_RETENTION = 5

# Section markup lives in the context but is not part of the compaction measure.
_SIZE_EXCLUDE = {"state": {"sections": {"__all__": {"content"}}}}

_CONTEXT_ID = re.compile(r"^ctx_(\d+)$")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def serialized_size(context: ReportContext) -> int:
    """Characters of the context's JSON form, section markup excluded."""
    return len(context.model_dump_json(exclude=_SIZE_EXCLUDE))


class ContextStore:
    """
    In-memory store of report contexts keyed by conversation id.

    The store performs no locking; callers serialize calls per conversation id.
    One instance is built at app startup and handed to the engine.
    """

    def __init__(
        self,
        max_context_size: int = DEFAULT_MAX_CONTEXT_SIZE,
        enhancement_retention: int = DEFAULT_ENHANCEMENT_RETENTION,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.max_context_size = max_context_size
        self.enhancement_retention = enhancement_retention
        self._clock = clock or _utc_now
        self._contexts: dict[str, ReportContext] = {}
        self._next_sequence = 1

    def __len__(self) -> int:
        return len(self._contexts)

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._contexts

    def create(self, conversation_id: str, base_query: str) -> Optional[ReportContext]:
        """Create a context. Returns None if one already exists for the conversation."""
        if conversation_id in self._contexts:
            logger.warning("Context already exists for conversation %s", conversation_id)
            return None
        context_id = f"ctx_{self._next_sequence:06d}"
        self._next_sequence += 1
        context = ReportContext(
            id=context_id,
            conversation_id=conversation_id,
            base_query=base_query,
        )
        context.metadata.last_update = self._clock()
        self._contexts[conversation_id] = context
        logger.info("Created context %s for conversation %s", context.id, conversation_id)
        return context

    def get(self, conversation_id: str) -> Optional[ReportContext]:
        return self._contexts.get(conversation_id)

    def list_contexts(self) -> List[ReportContext]:
        return list(self._contexts.values())

    def initialize(
        self,
        conversation_id: str,
        enhancement: Enhancement,
        patch: StatePatch,
    ) -> Optional[ReportContext]:
        """
        Record the first report of a fresh context.

        The first document is version 1, so this does not bump the version.
        Returns None if the context is missing or already has enhancements.
        """
        context = self._contexts.get(conversation_id)
        if context is None or context.enhancements:
            return None
        self._apply(context, enhancement, patch)
        return context

    def update(
        self,
        conversation_id: str,
        enhancement: Enhancement,
        patch: StatePatch,
    ) -> Optional[ReportContext]:
        """
        Apply a patch, append the enhancement and bump the version by one.

        Returns None when no context exists; create must come first.
        Compaction runs synchronously when the context outgrows the ceiling.
        """
        context = self._contexts.get(conversation_id)
        if context is None:
            logger.info("No context for conversation %s; update skipped", conversation_id)
            return None
        self._apply(context, enhancement, patch)
        context.metadata.version += 1
        return context

    def compress(self, context: ReportContext) -> bool:
        """
        Keep the last N enhancements and drop cached prices for assets no longer tracked.

        Returns False without changing anything when the context is within bounds.
        """
        size_before = serialized_size(context)
        if size_before <= self.max_context_size:
            logger.debug(
                "Context %s within bounds (%d <= %d); compaction skipped",
                context.id,
                size_before,
                self.max_context_size,
            )
            return False

        if len(context.enhancements) > self.enhancement_retention:
            context.enhancements = context.enhancements[-self.enhancement_retention :]
        assets = set(context.state.assets)
        context.data_cache.prices = {
            symbol: price
            for symbol, price in context.data_cache.prices.items()
            if symbol in assets
        }
        context.metadata.compressed = True
        logger.info(
            "Compacted context %s: %d -> %d chars, %d enhancements kept",
            context.id,
            size_before,
            serialized_size(context),
            len(context.enhancements),
        )
        return True

    def cache_market_data(
        self,
        conversation_id: str,
        prices: Optional[dict[str, float]] = None,
        metrics: Optional[dict[str, dict[str, Any]]] = None,
    ) -> Optional[ReportContext]:
        """Memoize reference lookups into the context's data cache."""
        context = self._contexts.get(conversation_id)
        if context is None:
            return None
        if prices:
            context.data_cache.prices.update(prices)
        for metric, values in (metrics or {}).items():
            context.data_cache.metrics.setdefault(metric, {}).update(values)
        return context

    def record_document_size(self, conversation_id: str, size: int) -> None:
        context = self._contexts.get(conversation_id)
        if context is not None:
            context.metadata.document_size = size

    def eviction_cutoff(self, max_age: timedelta) -> datetime:
        return self._clock() - max_age

    def idle_conversation_ids(self, cutoff: datetime) -> List[str]:
        """Conversations last updated before cutoff, as of this scan."""
        return [
            conversation_id
            for conversation_id, context in list(self._contexts.items())
            if _as_utc(context.metadata.last_update) < cutoff
        ]

    def evict_if_idle(self, conversation_id: str, cutoff: datetime) -> bool:
        """Delete one context if it is still older than cutoff at this moment."""
        current = self._contexts.get(conversation_id)
        if current is None or _as_utc(current.metadata.last_update) >= cutoff:
            return False
        del self._contexts[conversation_id]
        return True

    def evict(self, max_age: timedelta) -> List[str]:
        """
        Remove contexts whose last update is older than now - max_age.

        Staleness is checked again right before each delete so a context
        updated after the scan survives. Callers that serialize per
        conversation should hold that conversation's lock around
        evict_if_idle instead of calling this directly.
        """
        cutoff = self.eviction_cutoff(max_age)
        evicted = [
            conversation_id
            for conversation_id in self.idle_conversation_ids(cutoff)
            if self.evict_if_idle(conversation_id, cutoff)
        ]
        if evicted:
            logger.info("Evicted %d idle contexts", len(evicted))
        return evicted

    def export(self, conversation_id: str) -> Optional[str]:
        """Serialize a context to JSON with ISO-8601 timestamps."""
        context = self._contexts.get(conversation_id)
        if context is None:
            return None
        return context.model_dump_json()

    def parse_export(self, serialized: str) -> Optional[ReportContext]:
        """Validate an exported context without storing it."""
        try:
            return ReportContext.model_validate_json(serialized)
        except ValidationError as e:
            logger.error("Failed to import context: %s", e)
            return None

    def import_context(self, serialized: str) -> Optional[ReportContext]:
        """Rehydrate an exported context and store it, replacing any current one."""
        context = self.parse_export(serialized)
        if context is None:
            return None
        return self.restore(context)

    def restore(self, context: ReportContext) -> ReportContext:
        """
        Store a parsed context, replacing any current one for its conversation.

        The id sequence moves past imported ids so create never reuses one.
        """
        match = _CONTEXT_ID.match(context.id)
        if match:
            self._next_sequence = max(self._next_sequence, int(match.group(1)) + 1)
        self._contexts[context.conversation_id] = context
        logger.info(
            "Imported context %s for conversation %s (version %d)",
            context.id,
            context.conversation_id,
            context.metadata.version,
        )
        return context

    def _apply(
        self,
        context: ReportContext,
        enhancement: Enhancement,
        patch: StatePatch,
    ) -> None:
        previous_ids = set(context.section_ids())
        context.state = patch.apply(context.state)
        known_ids = previous_ids | set(context.section_ids())
        touched = _known(enhancement.touched_section_ids, known_ids)
        if len(touched) != len(enhancement.touched_section_ids):
            logger.debug(
                "Enhancement %s referenced unknown sections; dropped %s",
                enhancement.id,
                sorted(set(enhancement.touched_section_ids) - known_ids),
            )
            enhancement = enhancement.model_copy(update={"touched_section_ids": touched})
        context.enhancements.append(enhancement)
        context.metadata.last_update = self._clock()
        context.metadata.total_tokens_consumed += enhancement.estimated_token_cost
        if serialized_size(context) > self.max_context_size:
            self.compress(context)


def _known(section_ids: Iterable[str], known_ids: set[str]) -> List[str]:
    return [section_id for section_id in section_ids if section_id in known_ids]
