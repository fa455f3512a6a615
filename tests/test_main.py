"""Tests for the service entry point."""
import asyncio
import os
import signal
from unittest.mock import AsyncMock, patch

import pytest

from scoreline.main import run_service


@pytest.mark.asyncio
async def test_stop_signal_shuts_down():
    async def start():
        asyncio.get_running_loop().call_soon(os.kill, os.getpid(), signal.SIGTERM)

    with patch("scoreline.main.startup", side_effect=start), \
            patch("scoreline.main.shutdown", new_callable=AsyncMock) as stop:
        await asyncio.wait_for(run_service(), timeout=5)

    stop.assert_awaited_once()


@pytest.mark.asyncio
async def test_failed_startup_still_shuts_down():
    with patch("scoreline.main.startup", side_effect=RuntimeError("no database")), \
            patch("scoreline.main.shutdown", new_callable=AsyncMock) as stop:
        with pytest.raises(RuntimeError):
            await run_service()

    stop.assert_awaited_once()
