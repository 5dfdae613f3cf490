"""Tool-call middleware: composition and retrying."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from concurrent.futures import CancelledError
from dataclasses import dataclass
from typing import Any

ToolHandler = Callable[[str, Any], Any]
Middleware = Callable[[ToolHandler], ToolHandler]


def chain(*middlewares: Middleware) -> Middleware:
    """Compose middlewares; the first is the outermost."""

    def wrap(final: ToolHandler) -> ToolHandler:
        for mw in reversed(middlewares):
            final = mw(final)
        return final

    return wrap


@dataclass
class RetryConfig:
    """Retry settings; delays are in seconds and grow linearly per attempt.

    Setting ``cancel`` stops further attempts and interrupts waits between them.
    """

    max_attempts: int = 1
    base_delay: float = 0.0
    max_delay: float = 5.0
    cancel: threading.Event | None = None


def is_permanent(error: BaseException) -> bool:
    """True when the error declares itself permanent via a ``permanent`` attribute."""
    flag = getattr(error, "permanent", False)
    if callable(flag):
        flag = flag()
    return bool(flag)


def retry_middleware(config: RetryConfig) -> Middleware:
    attempts = config.max_attempts if config.max_attempts > 0 else 1
    max_delay = config.max_delay if config.max_delay > 0 else 5.0
    cancel = config.cancel

    def wrap(next_handler: ToolHandler) -> ToolHandler:
        def handler(name: str, args: Any) -> Any:
            last_error: Exception | None = None
            for attempt in range(attempts):
                if cancel is not None and cancel.is_set():
                    raise CancelledError("retry cancelled")
                try:
                    return next_handler(name, args)
                except Exception as exc:
                    if is_permanent(exc):
                        raise
                    last_error = exc
                if attempt < attempts - 1 and config.base_delay > 0:
                    delay = min(config.base_delay * (attempt + 1), max_delay)
                    if cancel is not None:
                        if cancel.wait(delay):
                            raise CancelledError("retry cancelled")
                    else:
                        time.sleep(delay)
            assert last_error is not None
            raise last_error

        return handler

    return wrap