"""Tests for lock-aware idle context eviction."""

import threading
from datetime import timedelta
from unittest.mock import patch

from app.core.conversation_locks import ConversationLocks
from app.services.context_eviction import evict_idle_contexts


def test_evicts_idle_contexts_and_forgets_their_locks(store, clock, faker):
    stale, fresh = faker.uuid4(), faker.uuid4()
    locks = ConversationLocks()
    store.create(stale, "old")
    with locks.hold(stale):
        pass
    clock.advance(hours=2)
    store.create(fresh, "new")

    evicted = evict_idle_contexts(store, locks, timedelta(hours=1))

    assert evicted == [stale]
    assert store.get(stale) is None
    assert store.get(fresh) is not None
    assert len(locks) == 0


def test_waits_for_held_lock_and_keeps_touched_context(store, clock, conversation_id):
    context = store.create(conversation_id, "q")
    clock.advance(hours=2)
    locks = ConversationLocks()
    scanned = threading.Event()
    scan = store.idle_conversation_ids
    result = []

    def scan_and_signal(cutoff):
        ids = scan(cutoff)
        scanned.set()
        return ids

    def sweep():
        result.extend(evict_idle_contexts(store, locks, timedelta(hours=1)))

    with patch.object(store, "idle_conversation_ids", side_effect=scan_and_signal):
        with locks.hold(conversation_id):
            sweeper = threading.Thread(target=sweep)
            sweeper.start()
            assert scanned.wait(timeout=5)
            # an enhancement finishing under the lock refreshes the context
            context.metadata.last_update = clock.now
        sweeper.join(timeout=5)

    assert result == []
    assert store.get(conversation_id) is context


def test_nothing_idle(store, conversation_id):
    store.create(conversation_id, "q")
    assert evict_idle_contexts(store, ConversationLocks(), timedelta(hours=1)) == []
