"""Idle context eviction that respects the per-conversation locks."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import List

from app.core.conversation_locks import ConversationLocks
from app.services.context_store import ContextStore

logger = logging.getLogger(__name__)


def evict_idle_contexts(
    store: ContextStore, locks: ConversationLocks, max_age: timedelta
) -> List[str]:
    """
    Drop contexts idle for longer than max_age.

    Each candidate is re-checked and deleted while holding its conversation
    lock, so an enhancement in flight finishes first and its update keeps
    the context alive.
    """
    cutoff = store.eviction_cutoff(max_age)
    evicted: List[str] = []
    for conversation_id in store.idle_conversation_ids(cutoff):
        with locks.hold(conversation_id):
            removed = store.evict_if_idle(conversation_id, cutoff)
        if removed:
            locks.discard(conversation_id)
            evicted.append(conversation_id)
        else:
            logger.debug("Context for %s was touched after the scan; kept", conversation_id)
    if evicted:
        logger.info("Evicted %d idle contexts", len(evicted))
    return evicted
