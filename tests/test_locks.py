"""KeyedLocks lifetime and exclusion."""

import threading
import time

from vicinity.core.locks import KeyedLocks
from vicinity.services.rate_limiter import AlertRateLimiter


def test_lock_is_shared_while_held_and_dropped_after():
    locks = KeyedLocks()
    with locks.hold(1):
        assert len(locks) == 1
        assert locks.get(1) is locks.get(1)
        with locks.hold(1):  # re-entrant
            pass
    assert len(locks) == 0


def test_same_key_excludes_other_threads():
    locks = KeyedLocks()
    inside = []

    def worker(n):
        with locks.hold("u"):
            inside.append(n)
            assert len(inside) == 1
            time.sleep(0.01)
            inside.remove(n)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert inside == []
    assert len(locks) == 0


def test_limiter_keeps_no_locks_for_evicted_users(clock):
    limiter = AlertRateLimiter(lambda uid: "immediate", ttl_seconds=60, clock=clock)
    for uid in range(1, 4):
        limiter.select(uid, [100])
    assert limiter.tracked_users() == 3

    clock.advance(61)
    assert limiter.evict_expired() == 3
    assert limiter.tracked_users() == 0
    assert len(limiter._locks) == 0
