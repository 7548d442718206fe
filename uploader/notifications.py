"""
Change notification fan-out.

Signals carry no payload: subscribers are told that the record store changed
and re-query it for current state.
"""

import logging
import queue
import threading
from typing import Callable, List, Optional

logger = logging.getLogger("video_uploader")


class ChangeSubscription:
    """A subscriber's view of the change stream"""

    def __init__(self, notifier: 'ChangeNotifier'):
        self._notifier = notifier
        self._signals: "queue.Queue[None]" = queue.Queue()
        self.closed = False

    def _deliver(self) -> None:
        self._signals.put(None)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the next change signal.

        Args:
            timeout: Seconds to wait, None to wait forever

        Returns:
            True if a signal was consumed, False on timeout
        """
        try:
            self._signals.get(timeout=timeout)
            return True
        except queue.Empty:
            return False

    def pending(self) -> int:
        return self._signals.qsize()

    def drain(self) -> int:
        """Consume all queued signals and return how many there were"""
        count = 0
        while True:
            try:
                self._signals.get_nowait()
            except queue.Empty:
                return count
            count += 1

    def close(self) -> None:
        if not self.closed:
            self._notifier._unsubscribe(self)
            self.closed = True

    def __enter__(self) -> 'ChangeSubscription':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ChangeNotifier:
    """Delivers one "store changed" signal per publish to every subscriber"""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: List[ChangeSubscription] = []
        self._listeners: List[Callable[[], None]] = []

    def subscribe(self) -> ChangeSubscription:
        subscription = ChangeSubscription(self)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: ChangeSubscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def add_listener(self, callback: Callable[[], None]) -> None:
        with self._lock:
            self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    def publish(self) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
            listeners = list(self._listeners)

        for subscription in subscriptions:
            subscription._deliver()

        for listener in listeners:
            try:
                listener()
            except Exception as e:
                logger.error(f"Change listener failed: {e}")

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions) + len(self._listeners)
