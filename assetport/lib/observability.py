"""Observability facade wrapping Pydantic Logfire.

Every provider operation runs inside :func:`operation`, which opens a
``storage.<name>`` span tagged with the backend kind. All of it no-ops when
logfire is not installed or not enabled in configuration.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from assetport.config import LogfireConfig

_logfire = None


def is_available() -> bool:
    return _logfire is not None


def configure(config: LogfireConfig) -> bool:
    """Initialize logfire. Returns False when disabled or not installed."""
    global _logfire

    if not config.enabled:
        return False

    try:
        import logfire as lf
    except ImportError:
        return False

    kwargs: dict[str, Any] = {
        "service_name": config.service_name,
        "send_to_logfire": "if-token-present",
    }
    if config.environment:
        kwargs["environment"] = config.environment
    if config.sample_rate != 1.0:
        kwargs["trace_sample_rate"] = config.sample_rate
    if config.console:
        kwargs["console"] = lf.ConsoleOptions()

    lf.configure(**kwargs)
    _logfire = lf
    return True


@contextmanager
def operation(name: str, backend: str, **attrs: Any):
    """Span around one storage operation, or a no-op if unavailable."""
    if not is_available():
        yield None
        return
    with _logfire.span("storage.{operation}", operation=name, backend=backend, **attrs) as s:
        yield s


def info(msg: str, **kwargs: Any) -> None:
    if is_available():
        _logfire.info(msg, **kwargs)
