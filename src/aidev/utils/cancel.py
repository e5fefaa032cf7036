"""Cooperative cancellation signals.

An ``AbortController`` owns an ``AbortSignal``; tools and providers only see the
signal. Checks are made at phase boundaries, and in-flight provider requests
race against ``AbortSignal.wait()``.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional


class AbortError(Exception):
    """Raised by ``AbortSignal.throw_if_aborted``."""


class AbortSignal:
    def __init__(self) -> None:
        self._aborted = False
        self.reason: Optional[str] = None
        self._callbacks: list[Callable[[Optional[str]], None]] = []
        self._waiters: list[asyncio.Future] = []
        self._sources: list[tuple[AbortSignal, Callable[[Optional[str]], None]]] = []

    @property
    def aborted(self) -> bool:
        return self._aborted

    def add_callback(self, callback: Callable[[Optional[str]], None]) -> None:
        if self._aborted:
            callback(self.reason)
        else:
            self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[Optional[str]], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def unlink(self) -> None:
        """Detach a signal built by ``any_signal`` from the signals it follows."""
        for source, callback in self._sources:
            source.remove_callback(callback)
        self._sources = []

    def throw_if_aborted(self) -> None:
        if self._aborted:
            raise AbortError(self.reason or "Operation aborted")

    async def wait(self) -> None:
        """Block until the signal is aborted."""
        if self._aborted:
            return
        future = asyncio.get_running_loop().create_future()
        self._waiters.append(future)
        try:
            await future
        finally:
            if future in self._waiters:
                self._waiters.remove(future)

    def _abort(self, reason: Optional[str]) -> None:
        if self._aborted:
            return
        self._aborted = True
        self.reason = reason
        for future in list(self._waiters):
            if not future.done():
                future.set_result(None)
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(reason)


class AbortController:
    def __init__(self) -> None:
        self.signal = AbortSignal()

    def abort(self, reason: Optional[str] = None) -> None:
        self.signal._abort(reason or "Operation aborted")


def any_signal(*signals: Optional[AbortSignal]) -> AbortSignal:
    """Signal that aborts as soon as any of ``signals`` aborts.

    Call ``unlink()`` on the result once it is no longer needed so long-lived
    sources do not keep it alive.
    """
    controller = AbortController()
    for signal in signals:
        if signal is not None:
            callback = controller.abort
            signal.add_callback(callback)
            controller.signal._sources.append((signal, callback))
    return controller.signal
