import asyncio
import os
import signal
from unittest.mock import MagicMock

import pytest

from gbp_access.config.settings import EngineSettings
from gbp_access.credentials.identity_provider import GoogleOAuthConfig
from gbp_access.workers.run_engine import build_engine, install_signal_handlers


def test_signal_handlers_registered_on_loop():
    loop = MagicMock()
    shutdown_event = asyncio.Event()

    install_signal_handlers(loop, shutdown_event)

    registered = {call.args[0] for call in loop.add_signal_handler.call_args_list}
    assert registered == {signal.SIGTERM, signal.SIGINT}

    callback, *args = loop.add_signal_handler.call_args_list[0].args[1:]
    callback(*args)
    assert shutdown_event.is_set()


@pytest.mark.asyncio
async def test_sigterm_wakes_waiting_loop():
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()
    install_signal_handlers(loop, shutdown_event)
    try:
        os.kill(os.getpid(), signal.SIGTERM)
        await asyncio.wait_for(shutdown_event.wait(), timeout=1)
    finally:
        loop.remove_signal_handler(signal.SIGTERM)
        loop.remove_signal_handler(signal.SIGINT)

    assert shutdown_event.is_set()


@pytest.mark.asyncio
async def test_build_engine_wires_jobs():
    settings = EngineSettings(database_url="sqlite://", sweep_interval_seconds=120)
    engine = build_engine(settings, GoogleOAuthConfig(client_id="id", client_secret="secret"))
    try:
        assert engine.sweep.interval_seconds == 120
        assert engine.refresh_scheduler.refresh_service.provider is engine.provider
        assert engine.sweep.evaluator is engine.evaluator
    finally:
        await engine.provider.aclose()
