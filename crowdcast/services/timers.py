"""One-shot keyed timers (escalation deadlines)."""

from typing import Any, Awaitable, Callable, Protocol


class TimerService(Protocol):
    def schedule(
        self,
        key: str,
        delay_seconds: float,
        callback: Callable[[], Awaitable[Any]],
    ) -> None:
        """Run ``callback`` once after ``delay_seconds``; replaces a timer with the same key."""
        ...

    def cancel(self, key: str) -> bool:
        """Cancel a pending timer; returns False if none was pending."""
        ...
