"""Notification side channel for success and error reporting."""

from __future__ import annotations

import logging
from typing import Protocol

from rich.console import Console

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify_success(self, message: str) -> None: ...

    def notify_error(self, message: str, caption: str | None = None) -> None: ...

    def notify_api_error(
        self, error: BaseException, caption: str | None = None
    ) -> None: ...


class NullNotifier:
    """Drops every notification."""

    def notify_success(self, message: str) -> None:
        pass

    def notify_error(self, message: str, caption: str | None = None) -> None:
        pass

    def notify_api_error(
        self, error: BaseException, caption: str | None = None
    ) -> None:
        pass


class ConsoleNotifier:
    """Prints notifications to a rich console."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)

    def notify_success(self, message: str) -> None:
        self.console.print(f"[green]✅ {message}[/green]")

    def notify_error(self, message: str, caption: str | None = None) -> None:
        if caption:
            self.console.print(f"[red]❌ {caption}: {message}[/red]")
        else:
            self.console.print(f"[red]❌ {message}[/red]")

    def notify_api_error(
        self, error: BaseException, caption: str | None = None
    ) -> None:
        self.notify_error(str(error) or type(error).__name__, caption)


class SafeNotifier:
    """Wraps a notifier so a failing channel never masks the caller's error."""

    def __init__(self, notifier: Notifier | None = None) -> None:
        self.notifier: Notifier = notifier or NullNotifier()

    def success(self, message: str) -> None:
        try:
            self.notifier.notify_success(message)
        except Exception:
            logger.exception("Notification failed: %s", message)

    def error(self, message: str, caption: str | None = None) -> None:
        try:
            self.notifier.notify_error(message, caption)
        except Exception:
            logger.exception("Error notification failed: %s", message)

    def api_error(self, error: BaseException, caption: str | None = None) -> None:
        try:
            self.notifier.notify_api_error(error, caption)
        except Exception:
            logger.exception("API error notification failed: %s", caption)
