"""File-backed log sink for messages and captured failures."""

from __future__ import annotations

import hashlib
import logging
import os
import smtplib
import socket
import sys
import time
from datetime import datetime
from email.message import EmailMessage
from pathlib import Path
from typing import Any, Callable, Protocol, Sequence

from flask import has_request_context, request

from .errors import LoggerError
from .failures import CapturedFailure, Priority

log = logging.getLogger(__name__)

NOTIFY_PRIORITIES = (Priority.ERROR, Priority.EXCEPTION, Priority.CRITICAL)
EMAIL_SNOOZE_SECONDS = 2 * 24 * 60 * 60


class LogSink(Protocol):
    def log(self, message: Any, priority: Priority = Priority.INFO) -> str | None:
        """Persist ``message``; return a reference to the stored report, if any."""


def as_failure(message: Any) -> CapturedFailure | None:
    if isinstance(message, CapturedFailure):
        return message
    if isinstance(message, BaseException):
        return CapturedFailure.from_exception(message)
    return None


def format_message(message: Any) -> str:
    failure = as_failure(message)
    if failure is None:
        text = message if isinstance(message, str) else repr(message)
    else:
        text = " caused by ".join(
            f"{item.headline()} in {item.location()}" for item in failure.chain()
        )
    return " ".join(text.split())


def _origin() -> str:
    if has_request_context():
        return request.url
    return f"CLI (PID: {os.getpid()}): {' '.join(sys.argv)}"


def default_mailer(message: EmailMessage) -> None:
    with smtplib.SMTP("localhost") as smtp:
        smtp.send_message(message)


class Logger:
    """Writes ``<directory>/<priority>.log`` and stores exception reports as HTML."""

    def __init__(
        self,
        directory: str | Path | None,
        email: str | Sequence[str] | None = None,
        blue_screen: Any = None,
        mailer: Callable[[EmailMessage], object] | None = None,
    ) -> None:
        self.directory = Path(directory) if directory else None
        self.email = email
        self.from_email: str | None = None
        self.email_snooze = EMAIL_SNOOZE_SECONDS
        self.blue_screen = blue_screen
        self.mailer = mailer or default_mailer

    def log(self, message: Any, priority: Priority = Priority.INFO) -> str | None:
        if self.directory is None:
            raise LoggerError("Logging directory is not specified.")
        if not self.directory.is_dir():
            raise LoggerError(f"Logging directory '{self.directory}' is not found or is not directory.")

        priority = Priority(priority)
        failure = as_failure(message)
        exception_file = self.log_exception(failure) if failure is not None else None
        line = self.format_log_line(message, exception_file)
        log_path = self.directory / f"{priority.value}.log"
        try:
            with log_path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        except OSError as exc:
            raise LoggerError(f"Unable to write to log file '{log_path}'. Is directory writable?") from exc

        if self.email and priority in NOTIFY_PRIORITIES:
            try:
                self.send_email(line)
            except Exception:
                log.debug("error notification could not be sent", exc_info=True)
        return str(exception_file) if exception_file else None

    def format_log_line(self, message: Any, exception_file: Path | None = None) -> str:
        parts = [
            datetime.now().strftime("[%Y-%m-%d %H-%M-%S]"),
            format_message(message),
            " @  " + _origin(),
        ]
        if exception_file:
            parts.append(" @@  " + exception_file.name)
        return " ".join(parts)

    def exception_file(self, failure: CapturedFailure) -> Path:
        assert self.directory is not None
        digest = hashlib.md5()
        for item in failure.chain():
            digest.update(
                "|".join(
                    [item.type_name, item.message, str(item.file), str(item.line)]
                    + [frame.function for frame in item.frames]
                ).encode("utf-8", "replace")
            )
        token = digest.hexdigest()[:10]
        for existing in self.directory.glob(f"exception--*--{token}.html"):
            return existing
        stamp = datetime.now().strftime("%Y-%m-%d--%H-%M")
        return self.directory / f"exception--{stamp}--{token}.html"

    def log_exception(self, failure: CapturedFailure) -> Path:
        path = self.exception_file(failure)
        if path.exists():
            return path
        if self.blue_screen is not None:
            content = self.blue_screen.render(failure)
        else:
            content = f"<pre>{failure.summary()}</pre>"
        path.write_text(content, encoding="utf-8")
        return path

    def send_email(self, line: str) -> None:
        assert self.directory is not None
        marker = self.directory / "email-sent"
        try:
            last = marker.stat().st_mtime
        except OSError:
            last = 0.0
        if last + self.email_snooze >= time.time():
            return
        marker.touch()

        recipients = [self.email] if isinstance(self.email, str) else list(self.email or [])
        host = request.host if has_request_context() else socket.gethostname()
        message = EmailMessage()
        message["From"] = self.from_email or f"noreply@{host}"
        message["To"] = ", ".join(recipients)
        message["Subject"] = f"Application error on {host}"
        message.set_content(f"{line}\n\nsource: {_origin()}")
        self.mailer(message)
