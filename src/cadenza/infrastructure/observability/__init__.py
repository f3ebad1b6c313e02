"""Observability: structured logging and error formatting."""

from cadenza.infrastructure.observability.error_formatting import format_oserror_message
from cadenza.infrastructure.observability.logging import (
    configure_logging,
    get_correlation_id,
    set_correlation_id,
)

__all__ = [
    "configure_logging",
    "format_oserror_message",
    "get_correlation_id",
    "set_correlation_id",
]
