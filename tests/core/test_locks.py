import threading
import time

from rolegate.core.locks import KeyedLocks


class TestKeyedLocks:
    """Test cases for the per-key lock registry"""

    def test_entry_released_after_hold(self):
        locks = KeyedLocks()
        with locks.hold("a"):
            assert len(locks) == 1
        assert len(locks) == 0

    def test_reentrant(self):
        locks = KeyedLocks()
        with locks.hold("a"):
            with locks.hold("a"):
                assert len(locks) == 1
        assert len(locks) == 0

    def test_released_when_body_raises(self):
        locks = KeyedLocks()
        try:
            with locks.hold("a"):
                raise ValueError("boom")
        except ValueError:
            pass
        assert len(locks) == 0

    def test_same_key_is_serialized(self):
        locks = KeyedLocks()
        events = []

        def work(name):
            with locks.hold("a"):
                events.append(f"{name}-in")
                time.sleep(0.05)
                events.append(f"{name}-out")

        threads = [threading.Thread(target=work, args=(name,)) for name in ("x", "y")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        # no interleaving: every enter is followed by its own exit
        assert events[0][0] == events[1][0]
        assert events[2][0] == events[3][0]
        assert len(locks) == 0
