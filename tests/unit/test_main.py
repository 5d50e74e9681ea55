"""
Unit tests for background task supervision in the API process.
"""

import asyncio
import logging
import signal
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from curator import main


async def _finished_task(coro) -> asyncio.Task:
    task = asyncio.create_task(coro, name="dispatcher")
    await asyncio.gather(task, return_exceptions=True)
    return task


class TestBackgroundTaskDone:
    @pytest.mark.asyncio
    async def test_failed_task_terminates_process(self, caplog):
        async def dispatcher():
            raise OperationalError("SELECT 1", {}, Exception("server closed the connection"))

        task = await _finished_task(dispatcher())

        with patch.object(main.os, "kill") as kill, caplog.at_level(logging.CRITICAL, logger="curator.main"):
            main.on_background_task_done(task)

        kill.assert_called_once_with(main.os.getpid(), signal.SIGTERM)
        assert "dispatcher failed" in caplog.text

    @pytest.mark.asyncio
    async def test_clean_exit_is_ignored(self):
        async def dispatcher():
            return None

        task = await _finished_task(dispatcher())

        with patch.object(main.os, "kill") as kill:
            main.on_background_task_done(task)

        kill.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancelled_task_is_ignored(self):
        task = asyncio.create_task(asyncio.sleep(10))
        await asyncio.sleep(0)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        with patch.object(main.os, "kill") as kill:
            main.on_background_task_done(task)

        kill.assert_not_called()

    @pytest.mark.asyncio
    async def test_callback_fires_when_attached(self):
        async def scheduler():
            raise RuntimeError("scheduler crashed")

        with patch.object(main.os, "kill") as kill:
            task = asyncio.create_task(scheduler(), name="scheduler")
            task.add_done_callback(main.on_background_task_done)
            await asyncio.gather(task, return_exceptions=True)
            # Done callbacks are scheduled on the next loop iteration
            await asyncio.sleep(0)

        kill.assert_called_once_with(main.os.getpid(), signal.SIGTERM)
