"""
Cooperative cancellation for rebuilds.

A token can be cancelled at any time before its rebuild reaches the commit
point. Once the controller marks the token committed, cancel() is refused:
the generation swap is the commit and cannot be undone.
"""
import threading

from contentdb.core.exceptions import RebuildCancelled


class CancellationToken:
    """Thread-safe cancel flag shared by a caller and one rebuild."""

    def __init__(self):
        self._lock = threading.Lock()
        self._cancelled = False
        self._committed = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def committed(self) -> bool:
        return self._committed

    def cancel(self) -> bool:
        """
        Request cancellation.

        Returns:
            True if the request was accepted, False once the rebuild has
            passed its commit point
        """
        with self._lock:
            if self._committed:
                return False
            self._cancelled = True
            return True

    def commit(self) -> bool:
        """
        Mark the commit point. Returns False if cancellation won the race.
        """
        with self._lock:
            if self._cancelled:
                return False
            self._committed = True
            return True

    def raise_if_cancelled(self, collection: str) -> None:
        if self._cancelled:
            raise RebuildCancelled(collection)
