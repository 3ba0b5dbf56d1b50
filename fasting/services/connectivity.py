"""
Online/offline signal for the fasting client.

Any HTTP response from the API host counts as online; connection errors and
timeouts count as offline. Transitions are forwarded to the offline queue,
which drains itself when the API comes back.
"""
import logging
from typing import Callable, List

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    def __init__(self, api_client, offline_queue):
        self.api = api_client
        self.queue = offline_queue
        self._on_reconnect: List[Callable[[], None]] = []

    def on_reconnect(self, callback: Callable[[], None]) -> None:
        self._on_reconnect.append(callback)

    def check(self) -> bool:
        online = self.api.ping()
        was_online = self.queue.is_online
        self.queue.set_online_status(online)

        if online and not was_online:
            for callback in self._on_reconnect:
                try:
                    callback()
                except Exception:
                    logger.exception(f"Reconnect callback {callback!r} failed")
        return online
