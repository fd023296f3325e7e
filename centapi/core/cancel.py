"""Cancellation support for in-flight API calls."""

import logging
from asyncio import CancelledError
from collections.abc import Callable

logger = logging.getLogger(__name__)


class CancellationToken:
    """Token for cancelling a pending API call from outside the awaiting task.

    Pass the token to CentClient.send_pipe() (or any convenience method).
    Calling cancel() aborts the HTTP exchange and the awaiting coroutine
    raises asyncio.CancelledError. Callbacks run on the event loop thread,
    so cancel() must be called from that thread (use
    loop.call_soon_threadsafe(token.cancel) from other threads).

    Example:
        token = CancellationToken()
        task = asyncio.create_task(client.send_pipe(pipe, cancel_token=token))

        # Later, e.g. on shutdown:
        token.cancel()
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    @property
    def is_cancelled(self) -> bool:
        """Check if cancellation has been requested."""
        return self._cancelled

    def cancel(self) -> None:
        """Request cancellation and notify callbacks."""
        if self._cancelled:
            return
        self._cancelled = True
        for callback in list(self._callbacks):
            self._invoke(callback)

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Register a callback to be called when cancelled.

        If already cancelled, callback is invoked immediately.
        """
        self._callbacks.append(callback)
        if self._cancelled:
            self._invoke(callback)

    def remove_callback(self, callback: Callable[[], None]) -> None:
        """Unregister a callback added with on_cancel(). Unknown callbacks are ignored."""
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass

    def raise_if_cancelled(self) -> None:
        """Raise CancelledError if cancellation was requested.

        Raises:
            asyncio.CancelledError: If cancel() was called.
        """
        if self._cancelled:
            raise CancelledError("API call cancelled")

    def reset(self) -> None:
        """Reset the token for reuse.

        Clears cancelled state but keeps callbacks.
        """
        self._cancelled = False

    @staticmethod
    def _invoke(callback: Callable[[], None]) -> None:
        # A failing callback must not prevent the others from running
        try:
            callback()
        except Exception:
            logger.debug("Cancellation callback %r failed", callback, exc_info=True)
