"""Tests for per-order mutation serialization."""

import threading
import time

from marketplace import services
from marketplace.order.locking import active_lock_count, order_lock


class TestOrderLock:
    def test_lock_entries_are_released(self):
        with order_lock("ord-1"):
            with order_lock("ord-2"):
                assert active_lock_count() == 2

        assert active_lock_count() == 0

    def test_same_order_is_serialized(self):
        events = []
        entered = threading.Event()

        def first():
            with order_lock("ord-1"):
                entered.set()
                time.sleep(0.05)
                events.append("first-done")

        def second():
            entered.wait()
            with order_lock("ord-1"):
                events.append("second")

        threads = [threading.Thread(target=first), threading.Thread(target=second)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert events == ["first-done", "second"]
        assert active_lock_count() == 0

    def test_different_orders_do_not_block(self):
        released = threading.Event()

        def hold():
            with order_lock("ord-1"):
                released.wait(1)

        holder = threading.Thread(target=hold)
        holder.start()
        try:
            acquired = []
            with order_lock("ord-2"):
                acquired.append(True)
            assert acquired == [True]
        finally:
            released.set()
            holder.join()

    def test_lock_is_released_when_the_body_raises(self):
        try:
            with order_lock("ord-1"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass

        assert active_lock_count() == 0


class TestMutationsUseTheLock:
    def test_service_mutation_releases_its_lock(self, place_order, vendor_a):
        order = place_order()

        services.transition_unit(order["id"], "vendor-a", "processing", vendor_a)

        assert active_lock_count() == 0

    def test_service_mutation_runs_under_the_order_lock(self, place_order, vendor_a, monkeypatch):
        order = place_order()
        seen = []
        real_process = services._process

        def recording_process(command):
            seen.append(active_lock_count())
            return real_process(command)

        monkeypatch.setattr(services, "_process", recording_process)
        services.transition_unit(order["id"], "vendor-a", "processing", vendor_a)

        assert seen == [1]
