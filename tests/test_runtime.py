"""Tests for the process-scoped runtime."""
import pytest
from bopomofo.services.checkpoint import MasteryThresholds, Phase
from bopomofo.services.reporter import ResultReporter
from bopomofo.services.runtime import Runtime


@pytest.fixture
def small_runtime():
    rt = Runtime(grader=None, reporter=ResultReporter(endpoint=""), max_sessions=2)
    yield rt
    rt.shutdown()


def start(machine):
    assert machine.start(["ㄅ", "ㄆ"], MasteryThresholds(2, 50), "S01")


class TestSessionRegistry:
    """Tests for per-device session bookkeeping."""

    def test_same_device_same_session(self, small_runtime):
        assert small_runtime.session_for("dev_a") is small_runtime.session_for("dev_a")
        assert small_runtime.session_for("dev_a") is not small_runtime.session_for("dev_b")

    def test_count_never_exceeds_cap(self, small_runtime):
        for i in range(10):
            small_runtime.session_for(f"dev_{i}")
        assert small_runtime.session_count == 2

    def test_idle_session_evicted_before_active_one(self, small_runtime):
        active = small_runtime.session_for("dev_active")
        start(active)
        small_runtime.session_for("dev_idle")

        small_runtime.session_for("dev_new")

        # dev_active is older but has a level in progress
        assert small_runtime.session_for("dev_active") is active
        assert active.phase == Phase.IN_LEVEL

    def test_least_recently_used_evicted_when_all_active(self, small_runtime):
        first = small_runtime.session_for("dev_1")
        second = small_runtime.session_for("dev_2")
        start(first)
        start(second)

        # Touch dev_1 so dev_2 becomes the least recently used
        small_runtime.session_for("dev_1")
        start(small_runtime.session_for("dev_3"))

        assert small_runtime.session_for("dev_1") is first
        assert small_runtime.session_for("dev_2") is not second
