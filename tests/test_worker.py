"""Tests for the aggregation schedule in newsroom.worker."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from newsroom.job_queue import InMemoryJobQueue
from newsroom.worker import schedule_aggregation


class TestScheduleAggregation:
    @pytest.mark.asyncio
    @patch("newsroom.worker.enqueue_aggregation", new_callable=AsyncMock)
    async def test_enqueues_after_initial_delay(self, mock_enqueue) -> None:
        stop = asyncio.Event()
        queue = InMemoryJobQueue("agg")

        async def stop_after_first_enqueue(q):
            stop.set()

        mock_enqueue.side_effect = stop_after_first_enqueue
        await asyncio.wait_for(
            schedule_aggregation(queue, interval_minutes=3, stop=stop, initial_delay=0.01), timeout=2
        )

        mock_enqueue.assert_awaited_once_with(queue)

    @pytest.mark.asyncio
    @patch("newsroom.worker.enqueue_aggregation", new_callable=AsyncMock)
    async def test_stop_before_first_run(self, mock_enqueue) -> None:
        stop = asyncio.Event()
        stop.set()

        await schedule_aggregation(InMemoryJobQueue("agg"), interval_minutes=3, stop=stop)

        mock_enqueue.assert_not_awaited()
