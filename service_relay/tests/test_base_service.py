"""
Unit tests for the shared service scaffolding used by the relay.
"""

import asyncio
import sys
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from shared.base_service import format_iso, install_fatal_error_handlers


class TestFormatIso:
    """Test cases for format_iso."""

    def test_naive_datetime_is_utc(self):
        assert format_iso(datetime(2024, 1, 2, 3, 4, 5, 678900)) == "2024-01-02T03:04:05.678Z"

    def test_aware_datetime_is_converted(self):
        value = datetime(2024, 1, 2, 5, 4, 5, tzinfo=timezone(timedelta(hours=2)))
        assert format_iso(value) == "2024-01-02T03:04:05.000Z"


class TestFatalErrorHandlers:
    """Unexpected process-level failures terminate the process."""

    @pytest.mark.asyncio
    async def test_loop_and_thread_failures_exit(self):
        logger = MagicMock()
        loop = asyncio.get_running_loop()
        original_hook = sys.excepthook
        original_handler = loop.get_exception_handler()
        try:
            with patch("shared.base_service.os._exit") as mock_exit:
                install_fatal_error_handlers(logger)

                loop.call_exception_handler({
                    "message": "Task exception was never retrieved",
                    "exception": RuntimeError("boom"),
                })
                mock_exit.assert_called_once_with(1)

                sys.excepthook(ValueError, ValueError("bad"), None)
                assert mock_exit.call_count == 2
        finally:
            sys.excepthook = original_hook
            loop.set_exception_handler(original_handler)

        assert logger.critical.call_count == 2

    @pytest.mark.asyncio
    async def test_keyboard_interrupt_is_not_fatal(self):
        logger = MagicMock()
        loop = asyncio.get_running_loop()
        original_hook = sys.excepthook
        original_handler = loop.get_exception_handler()
        try:
            with patch("shared.base_service.os._exit") as mock_exit, \
                    patch("shared.base_service.sys.__excepthook__") as default_hook:
                install_fatal_error_handlers(logger)
                sys.excepthook(KeyboardInterrupt, KeyboardInterrupt(), None)

                mock_exit.assert_not_called()
                default_hook.assert_called_once()
        finally:
            sys.excepthook = original_hook
            loop.set_exception_handler(original_handler)
