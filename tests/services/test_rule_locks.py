"""Tests for the in-process per-rule lock registry."""

import threading
import time
from uuid import uuid4

import pytest

from recurrence_kernel.exceptions import RuleLockTimeoutError
from recurrence_kernel.services.rule_locks import (
    RuleLockRegistry,
    get_rule_lock_registry,
)


class TestRuleLockRegistry:

    def test_hold_returns_sorted_distinct_keys(self):
        registry = RuleLockRegistry()
        a, b = uuid4(), uuid4()
        with registry.hold(b, a, b, None) as keys:
            assert keys == tuple(sorted({str(a), str(b)}))
            assert registry.is_locked(a) and registry.is_locked(b)
        assert not registry.is_locked(a)
        assert not registry.is_locked(b)

    def test_timeout_raises_and_releases_partial(self):
        registry = RuleLockRegistry(timeout_seconds=0.05)
        first, second = sorted([uuid4(), uuid4()], key=str)

        with registry.hold(second):
            with pytest.raises(RuleLockTimeoutError) as exc_info:
                with registry.hold(first, second):
                    pass
            assert exc_info.value.rule_id == str(second)
            assert exc_info.value.code == "RULE_LOCK_TIMEOUT"
            assert not registry.is_locked(first)

    def test_released_on_exception(self):
        registry = RuleLockRegistry()
        rule_id = uuid4()
        with pytest.raises(RuntimeError):
            with registry.hold(rule_id):
                raise RuntimeError("boom")
        assert not registry.is_locked(rule_id)

    def test_second_holder_waits(self):
        registry = RuleLockRegistry(timeout_seconds=2.0)
        rule_id = uuid4()
        order: list[str] = []
        started = threading.Event()

        def holder():
            with registry.hold(rule_id):
                started.set()
                time.sleep(0.1)
                order.append("first")

        thread = threading.Thread(target=holder)
        thread.start()
        started.wait()
        with registry.hold(rule_id):
            order.append("second")
        thread.join()

        assert order == ["first", "second"]
        assert registry.tracked_count == 0

    def test_released_rules_are_forgotten(self):
        registry = RuleLockRegistry()
        with registry.hold(uuid4(), uuid4()):
            assert registry.tracked_count == 2
        assert registry.tracked_count == 0

    def test_timed_out_waiter_does_not_evict_holder(self):
        registry = RuleLockRegistry(timeout_seconds=0.05)
        rule_id = uuid4()

        with registry.hold(rule_id):
            with pytest.raises(RuleLockTimeoutError):
                with registry.hold(rule_id):
                    pass
            assert registry.is_locked(rule_id)
            assert registry.tracked_count == 1
        assert registry.tracked_count == 0

    def test_default_registry_is_shared(self):
        assert get_rule_lock_registry() is get_rule_lock_registry()
