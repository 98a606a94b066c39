"""Ctrl-C and SIGTERM handling for CLI entry points."""

from __future__ import annotations

from collections.abc import Callable, Generator
import contextlib
import signal
import sys
from typing import Any

CANCELLED_EXIT = 130  # 128 + SIGINT


def _print_cancelled(msg: str = "✖ Cancelled by user") -> None:
    sys.stderr.write("\n" + msg + "\n")
    sys.stderr.flush()


@contextlib.contextmanager
def _quiet_interrupts() -> Generator[None, None, None]:
    """Swallow KeyboardInterrupt tracebacks raised outside the main call."""
    previous = sys.excepthook

    def _hook(exc_type: type, exc: BaseException, tb: Any) -> Any:
        if exc_type is KeyboardInterrupt:
            _print_cancelled()
            sys.exit(CANCELLED_EXIT)
        return previous(exc_type, exc, tb)

    sys.excepthook = _hook
    try:
        yield
    finally:
        sys.excepthook = previous


def graceful_main(fn: Callable[[list[str]], int], argv: list[str]) -> int:
    """
    Run ``fn(argv)``, turning Ctrl-C and SIGTERM into exit code 130.

    Args:
        fn: Entry point taking argv and returning an exit code
        argv: Command line arguments

    Returns:
        Exit code
    """

    def _on_term(_signum: int, _frame: Any) -> None:
        raise KeyboardInterrupt()

    previous_term = signal.getsignal(signal.SIGTERM)
    signal.signal(signal.SIGTERM, _on_term)

    try:
        with _quiet_interrupts():
            return int(fn(argv) or 0)
    except KeyboardInterrupt:
        _print_cancelled()
        return CANCELLED_EXIT
    finally:
        signal.signal(signal.SIGTERM, previous_term)
