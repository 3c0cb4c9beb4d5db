"""Cooperative cancellation for image resolution loops."""

import asyncio


class CancellationToken:
    """Liveness flag checked between suspension points.

    Cancelling never interrupts an in-flight request; callers check the
    token after each await and drop whatever came back.
    """

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def is_cancelled(token) -> bool:
    return token is not None and token.cancelled
