"""Diagnostic messages and signal handling shared by the tools."""

from __future__ import annotations

import signal
import sys
from dataclasses import dataclass


@dataclass
class _Settings:
    program: str = "rdup"


_settings = _Settings()


def set_program(name: str) -> None:
    """Set the program name that prefixes every message."""
    _settings.program = name


def msg(text: str) -> None:
    """Print a diagnostic to standard error."""
    sys.stderr.write(f"** {_settings.program}: {text}\n")


def signal_message(signum: int) -> str | None:
    """Return the exit message for ``signum``; None if it is not fatal."""
    if signum == getattr(signal, "SIGPIPE", None):
        return "SIGPIPE received, exiting"
    if signum == signal.SIGINT:
        return "SIGINT received, exiting"
    if signum == getattr(signal, "SIGCHLD", None):
        return None
    return "Unhandled signal received, exiting"


class Aborted(Exception):
    """Raised when a fatal signal arrives."""

    def __init__(self, signum: int) -> None:
        self.signum = signum
        super().__init__(signal_message(signum) or f"signal {signum} received")


def _handler(signum, frame):
    raise Aborted(signum)


def install_signal_handlers() -> dict:
    """Make SIGPIPE and SIGINT raise Aborted; return the previous handlers."""
    previous = {}
    for name in ("SIGPIPE", "SIGINT"):
        signum = getattr(signal, name, None)
        if signum is not None:
            previous[signum] = signal.signal(signum, _handler)
    return previous