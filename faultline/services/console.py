"""Best-effort forwarding of messages and failures to a live log console."""

from __future__ import annotations

import logging
from typing import Any

from .failures import CapturedFailure, Priority
from .logger import as_failure, format_message

_LEVELS = {
    Priority.DEBUG: logging.DEBUG,
    Priority.INFO: logging.INFO,
    Priority.WARNING: logging.WARNING,
    Priority.ERROR: logging.ERROR,
    Priority.EXCEPTION: logging.ERROR,
    Priority.CRITICAL: logging.CRITICAL,
}


class ConsoleForwarder:
    """Sends records to the ``faultline.console`` logger.

    Attach any handler to that logger (a stream handler, a socket handler for
    a remote viewer) to watch the console live.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger("faultline.console")

    def send(self, message: Any, priority: Priority = Priority.DEBUG) -> bool:
        try:
            failure = as_failure(message)
            if failure is not None:
                level = logging.WARNING if failure.kind == "warning" else _LEVELS[Priority.EXCEPTION]
                self.logger.log(
                    level,
                    format_message(failure),
                    extra={"faultline_failure": _payload(failure)},
                )
            else:
                self.logger.log(_LEVELS[Priority(priority)], format_message(message))
        except Exception:
            return False
        return True


def _payload(failure: CapturedFailure) -> dict[str, Any]:
    return {
        "type": failure.type_name,
        "message": failure.message,
        "file": failure.file,
        "line": failure.line,
        "trace": [str(frame) for frame in failure.frames],
    }
