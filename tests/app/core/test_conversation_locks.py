import threading
import time

from app.core.conversation_locks import ConversationLocks


def test_same_conversation_is_serialized():
    locks = ConversationLocks()
    active = []
    overlaps = []

    def work():
        with locks.hold("c1"):
            active.append(1)
            if len(active) > 1:
                overlaps.append(True)
            time.sleep(0.01)
            active.pop()

    threads = [threading.Thread(target=work) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert overlaps == []


def test_discard_forgets_idle_lock():
    locks = ConversationLocks()
    with locks.hold("c1"):
        locks.discard("c1")
        assert len(locks) == 1
    locks.discard("c1")
    assert len(locks) == 0
