"""
Admission Control — Unit Tests
===============================

Counter bound, FIFO hand-off, queue timeout and cancellation.
"""

import asyncio

import pytest

from tripmeta.core.exceptions import QueueTimeoutError
from tripmeta.infra.runtime.admission import AdmissionController
from tripmeta.infra.telemetry import MetricsCollector

async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)

class TestAdmissionController:
    @pytest.mark.asyncio
    async def test_fast_path_until_bound(self):
        admission = AdmissionController(max_concurrent=2)
        assert await admission.acquire("a") == 0.0
        assert await admission.acquire("b") == 0.0
        assert admission.active_count == 2
        assert admission.saturated

    @pytest.mark.asyncio
    async def test_excess_request_waits_until_release(self):
        admission = AdmissionController(max_concurrent=1)
        await admission.acquire("a")

        waiter = asyncio.create_task(admission.acquire("b"))
        await _settle()
        assert not waiter.done()
        assert admission.queued_ids() == ["b"]

        admission.release()
        await waiter
        assert admission.active_count == 1
        assert admission.queue_depth == 0

    @pytest.mark.asyncio
    async def test_waiters_admitted_in_fifo_order(self):
        admission = AdmissionController(max_concurrent=1)
        await admission.acquire("first")
        order: list[str] = []

        async def wait(name: str) -> None:
            await admission.acquire(name)
            order.append(name)

        tasks = []
        for name in ("w1", "w2", "w3"):
            tasks.append(asyncio.create_task(wait(name)))
            await _settle()

        for _ in range(3):
            admission.release()
            await _settle()

        await asyncio.gather(*tasks)
        assert order == ["w1", "w2", "w3"]

    @pytest.mark.asyncio
    async def test_newcomer_does_not_overtake_queue(self):
        admission = AdmissionController(max_concurrent=1)
        await admission.acquire("holder")
        queued = asyncio.create_task(admission.acquire("queued"))
        await _settle()

        admission.release()
        # The slot was handed to "queued"; a newcomer must wait behind it.
        newcomer = asyncio.create_task(admission.acquire("newcomer"))
        await _settle()

        assert queued.done()
        assert not newcomer.done()
        admission.release()
        await newcomer
        assert admission.active_count == 1

    @pytest.mark.asyncio
    async def test_release_without_waiters_decrements(self):
        admission = AdmissionController(max_concurrent=3)
        await admission.acquire("a")
        admission.release()
        assert admission.active_count == 0

    def test_release_without_acquire_raises(self):
        admission = AdmissionController(max_concurrent=1)
        with pytest.raises(RuntimeError):
            admission.release()

    @pytest.mark.asyncio
    async def test_queue_timeout_expires_waiter(self):
        metrics = MetricsCollector()
        admission = AdmissionController(max_concurrent=1, queue_timeout_s=0.05, metrics=metrics)
        await admission.acquire("holder")

        with pytest.raises(QueueTimeoutError) as exc_info:
            await admission.acquire("late")

        assert exc_info.value.request_id == "late"
        assert admission.queue_depth == 0
        assert admission.active_count == 1
        assert admission.get_stats()["total_expired"] == 1
        assert metrics.registry.get_sample_value("tripmeta_admission_expired_total") == 1.0

        # The queue stays consistent: the next release frees the slot.
        admission.release()
        assert admission.active_count == 0

    @pytest.mark.asyncio
    async def test_cancelled_waiter_leaves_queue(self):
        admission = AdmissionController(max_concurrent=1)
        await admission.acquire("holder")
        waiter = asyncio.create_task(admission.acquire("gone"))
        await _settle()

        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        assert admission.queue_depth == 0
        admission.release()
        assert admission.active_count == 0

    @pytest.mark.asyncio
    async def test_cancel_after_hand_off_does_not_leak_slot(self):
        admission = AdmissionController(max_concurrent=1)
        await admission.acquire("holder")
        waiter = asyncio.create_task(admission.acquire("lucky"))
        await _settle()

        # Hand the slot over, then cancel before the waiter resumes.
        admission.release()
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        assert admission.active_count == 0
        assert admission.queue_depth == 0

    @pytest.mark.asyncio
    async def test_gauges_track_active_and_queue(self):
        metrics = MetricsCollector()
        admission = AdmissionController(max_concurrent=1, metrics=metrics)
        await admission.acquire("a")
        waiter = asyncio.create_task(admission.acquire("b"))
        await _settle()

        assert metrics.registry.get_sample_value("tripmeta_admission_active_requests") == 1.0
        assert metrics.registry.get_sample_value("tripmeta_admission_queue_depth") == 1.0

        admission.release()
        await waiter
        assert metrics.registry.get_sample_value("tripmeta_admission_queue_depth") == 0.0
