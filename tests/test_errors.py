from __future__ import annotations

import logging

from remix_engine.errors import (
    ConfigurationError,
    GatewayError,
    ProviderAPIError,
    RemixError,
    TransportError,
    ValidationError,
    user_message,
)
from remix_engine.logging_config import get_logger, setup_logging


def test_user_message_by_error_kind() -> None:
    assert user_message(ValidationError("Please enter a prompt.")) == "Please enter a prompt."
    assert user_message(ConfigurationError("no key")) == "Generation is not configured: no key"
    assert user_message(ProviderAPIError("x", status=429)) == "Rate limit exceeded. Please wait a moment and try again."
    assert user_message(ProviderAPIError("x", status=401)) == "Authentication required. Please sign in."
    assert user_message(ProviderAPIError("bad size", status=400)) == "Image generation failed (400): bad size"
    assert user_message(ProviderAPIError("empty")) == "Image generation failed: empty"
    unavailable = "Image generation service is currently unavailable. Please try again."
    assert user_message(GatewayError("gave up", attempts=3)) == unavailable
    assert user_message(TransportError("timed out", timed_out=True)) == unavailable
    assert user_message(RuntimeError("boom")) == "Image generation failed: boom"


def test_error_str_includes_details() -> None:
    assert str(RemixError("plain")) == "plain"
    assert str(RemixError("with", {"k": 1})) == "with | Details: {'k': 1}"
    error = GatewayError("gave up", attempts=3)
    assert error.details == {"attempts": 3}


def test_loggers_share_namespace() -> None:
    setup_logging("info", console_output=False)
    logger = get_logger("gateway")
    assert logger.name == "remix_engine.gateway"
    assert get_logger("remix_engine.session").name == "remix_engine.session"
    assert logging.getLogger("remix_engine").level == logging.INFO
    setup_logging("nonsense", console_output=False)
    assert logging.getLogger("remix_engine").level == logging.WARNING
