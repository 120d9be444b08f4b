"""
Unit tests for periodic device status polling.
"""

import threading
import time

import pytest

from droidpanel.executor import ThreadPoolManager
from droidpanel.orchestration import DevicePoller, Observable


@pytest.fixture
def pools():
    manager = ThreadPoolManager()
    manager.initialize()
    yield manager
    manager.shutdown_all()


def poller_threads():
    return [t for t in threading.enumerate() if t.name.startswith("DevicePoller") and t.is_alive()]


@pytest.mark.unit
class TestDevicePoller:

    def test_publishes_query_result(self, pools, coordination_loop, test_utils):
        status = Observable(False, coordination_loop)
        poller = DevicePoller(lambda: True, pools, coordination_loop, status, interval=0.02)

        poller.start()
        try:
            assert test_utils.wait_until(lambda: status.value is True)
        finally:
            poller.stop()

    def test_query_runs_on_polling_pool(self, pools, coordination_loop, test_utils):
        names = []

        def query():
            names.append(threading.current_thread().name)
            return False

        poller = DevicePoller(query, pools, coordination_loop, Observable(False, coordination_loop), interval=0.02)
        poller.start()
        try:
            assert test_utils.wait_until(lambda: names)
        finally:
            poller.stop()
        assert names[0].startswith("PollWorker")

    def test_tick_skipped_while_query_in_flight(self, pools, coordination_loop, test_utils):
        release = threading.Event()
        calls = []

        def slow_query():
            calls.append(time.monotonic())
            release.wait(5.0)
            return True

        poller = DevicePoller(slow_query, pools, coordination_loop, Observable(False, coordination_loop),
                              interval=0.01)
        poller.start()
        try:
            assert test_utils.wait_until(lambda: poller.skipped_ticks >= 3)
            assert len(calls) == 1
        finally:
            release.set()
            poller.stop()

    def test_restart_leaves_exactly_one_timer(self, pools, coordination_loop):
        poller = DevicePoller(lambda: False, pools, coordination_loop, Observable(False, coordination_loop),
                              interval=0.02)
        poller.start()
        poller.start()
        poller.start()
        try:
            assert poller.is_running()
            assert len(poller_threads()) == 1
        finally:
            poller.stop()
        assert poller_threads() == []

    def test_restart_query_rate_matches_one_timer(self, pools, coordination_loop):
        calls = []
        lock = threading.Lock()

        def counting_query():
            with lock:
                calls.append(time.monotonic())
            return False

        poller = DevicePoller(counting_query, pools, coordination_loop, Observable(False, coordination_loop),
                              interval=0.05)
        poller.start()
        poller.start()
        try:
            time.sleep(0.5)
        finally:
            poller.stop()

        # One timer ticks about 11 times in the window (one immediate tick
        # plus one per interval); two would come close to 22.
        with lock:
            count = len(calls)
        assert 5 <= count <= 14

    def test_stop_is_idempotent_and_halts_queries(self, pools, coordination_loop):
        calls = []
        poller = DevicePoller(lambda: calls.append(1) or False, pools, coordination_loop,
                              Observable(False, coordination_loop), interval=0.01)
        poller.stop()
        poller.start()
        time.sleep(0.05)
        poller.stop()
        poller.stop()

        time.sleep(0.02)
        count = len(calls)
        time.sleep(0.1)

        assert not poller.is_running()
        assert len(calls) == count

    def test_failing_query_keeps_polling(self, pools, coordination_loop, test_utils):
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) == 1:
                raise OSError("adb not found")
            return True

        status = Observable(False, coordination_loop)
        poller = DevicePoller(flaky, pools, coordination_loop, status, interval=0.01)
        poller.start()
        try:
            assert test_utils.wait_until(lambda: status.value is True)
        finally:
            poller.stop()

    def test_results_of_stopped_timer_are_discarded(self, pools, coordination_loop):
        status = Observable(False, coordination_loop)
        poller = DevicePoller(lambda: False, pools, coordination_loop, status, interval=10.0)
        poller.start()
        old_generation = poller._generation
        poller.stop()

        coordination_loop.call(poller._publish, old_generation, True)
        assert status.value is False
