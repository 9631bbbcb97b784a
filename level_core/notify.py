from __future__ import annotations
import logging
from typing import List, Protocol

log = logging.getLogger(__name__)


class Notifier(Protocol):
    def alert(self, message: str) -> None: ...
    def confirm(self, message: str) -> bool: ...


class QueuedNotifier:
    """Collects alerts for request/response callers; confirmations use a fixed answer."""

    def __init__(self, confirm_answer: bool = False) -> None:
        self.messages: List[str] = []
        self.confirm_answer = confirm_answer

    def alert(self, message: str) -> None:
        log.debug("alert: %s", message)
        self.messages.append(message)

    def confirm(self, message: str) -> bool:
        log.debug("confirm (%s): %s", self.confirm_answer, message)
        return self.confirm_answer

    def drain(self) -> List[str]:
        out, self.messages = self.messages, []
        return out


class ConsoleNotifier:
    def alert(self, message: str) -> None:
        print(f"\n! {message}")

    def confirm(self, message: str) -> bool:
        try:
            return input(f"{message} [y/N] ").strip().lower() in {"y", "yes"}
        except EOFError:
            return False
