"""
Offline mutation queue.

Mutations made while offline are appended here (the caller applies its own
optimistic update) and replayed in FIFO order once the API is reachable
again. The queue is one linear list, never split into per-resource lanes.

An action that fails MAX_RETRIES times is dropped: it is removed from the
queue, logged at ERROR, reported through the notifier and kept in a bounded
dead-letter list so the lost mutation can still be inspected.
"""
import logging
import random
import string
import threading
import time
from dataclasses import dataclass, asdict, field
from datetime import datetime
from typing import Dict, List, Optional

from django.utils import timezone

from healthtracker.sync_utils import SyncResult
from .api_client import (
    FastingAPIError,
    METRICS_ENDPOINT,
    PROFILE_ENDPOINT,
    SCHEDULED_ENDPOINT,
    SESSIONS_ENDPOINT,
    WEIGHT_ENDPOINT,
)

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
DEAD_LETTER_LIMIT = 50
TEMP_ID_PREFIX = 'temp-'

STORE_NAMESPACE = 'offline_queue'

ACTION_TYPES = ('CREATE', 'UPDATE', 'DELETE')

RESOURCE_ENDPOINTS = {
    'session': SESSIONS_ENDPOINT,
    'weight': WEIGHT_ENDPOINT,
    'metric': METRICS_ENDPOINT,
    'profile': PROFILE_ENDPOINT,
    'scheduled': SCHEDULED_ENDPOINT,
}


def _epoch_ms() -> int:
    return int(time.time() * 1000)


def generate_action_id() -> str:
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{_epoch_ms()}-{suffix}"


def is_temp_id(value) -> bool:
    return isinstance(value, str) and value.startswith(TEMP_ID_PREFIX)


@dataclass
class QueuedAction:
    type: str
    resource: str
    data: Dict
    id: str = field(default_factory=generate_action_id)
    timestamp: int = field(default_factory=_epoch_ms)
    retries: int = 0

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'QueuedAction':
        return cls(
            type=data['type'],
            resource=data['resource'],
            data=data.get('data') or {},
            id=data['id'],
            timestamp=data.get('timestamp', 0),
            retries=data.get('retries', 0),
        )


class OfflineQueue:
    def __init__(self, api_client, local_store, notifier=None, is_online: bool = True):
        self.api = api_client
        self.local_store = local_store
        self.notifier = notifier
        self.is_online = is_online
        self.is_syncing = False
        self._lock = threading.RLock()

        self._queue: List[QueuedAction] = []
        self._reload()
        last_sync = self.local_store.get(STORE_NAMESPACE, 'last_sync_time')
        self.last_sync_time: Optional[datetime] = datetime.fromisoformat(last_sync) if last_sync else None

        if self._queue:
            logger.info(f"Restored {len(self._queue)} queued offline actions")

    def _reload(self) -> None:
        """
        Re-read the queue from the local store. Other processes (e.g. a CLI
        command run next to `fasting_client monitor`) share the state file,
        so every read and every read-modify-write starts from the file.
        """
        with self._lock:
            self.local_store.reload()
            stored = self.local_store.get(STORE_NAMESPACE, 'queue', [])
            self._queue = [QueuedAction.from_dict(item) for item in stored]

    # ---- Queue access ----

    @property
    def queue(self) -> List[QueuedAction]:
        with self._lock:
            self._reload()
            return list(self._queue)

    def __len__(self):
        with self._lock:
            self._reload()
            return len(self._queue)

    def add_to_queue(self, action_type: str, resource: str, data: Dict) -> QueuedAction:
        if action_type not in ACTION_TYPES:
            raise ValueError(f"Unknown action type: {action_type}")
        if resource not in RESOURCE_ENDPOINTS:
            raise ValueError(f"Unknown resource: {resource}")

        action = QueuedAction(type=action_type, resource=resource, data=dict(data))
        with self._lock:
            self._reload()
            self._queue.append(action)
            self._persist()
        logger.info(f"Queued offline {action_type} {resource} ({action.id})")
        return action

    def remove_from_queue(self, action_id: str) -> None:
        with self._lock:
            self._reload()
            self._queue = [a for a in self._queue if a.id != action_id]
            self._persist()

    def clear_queue(self) -> None:
        with self._lock:
            self._queue = []
            self._persist()

    def dropped_actions(self) -> List[Dict]:
        return list(self.local_store.get(STORE_NAMESPACE, 'dead_letter', []))

    # ---- Connectivity ----

    def set_online_status(self, online: bool) -> Optional[SyncResult]:
        """Record connectivity; an offline -> online transition drains a non-empty queue."""
        with self._lock:
            was_online = self.is_online
            self.is_online = online
            should_sync = online and not was_online and len(self) > 0

        if was_online != online:
            logger.info(f"Connectivity changed: {'online' if online else 'offline'}")
        if should_sync:
            return self.sync_queue()
        return None

    def sync_if_pending(self) -> Optional[SyncResult]:
        """Drain the queue before a new mutation, when online and something is queued."""
        if self.is_online and len(self):
            return self.sync_queue()
        return None

    # ---- Replay ----

    def sync_queue(self) -> SyncResult:
        result = SyncResult(source='offline_queue')

        with self._lock:
            self._reload()
            if not self.is_online or self.is_syncing or not self._queue:
                result.skipped = True
                return result
            self.is_syncing = True
            pending_ids = [a.id for a in self._queue]

        logger.info(f"Syncing {len(pending_ids)} offline actions")
        try:
            for action_id in pending_ids:
                action = self._find(action_id)
                if action is None:
                    continue
                try:
                    response = self._execute(action)
                except FastingAPIError as e:
                    self._record_failure(action, e, result)
                    continue

                self._record_success(action, response)
                result.synced += 1
        finally:
            with self._lock:
                self.is_syncing = False
                self.last_sync_time = timezone.now()
                self.local_store.set(STORE_NAMESPACE, 'last_sync_time', self.last_sync_time.isoformat())

        logger.info(f"Offline queue sync: {result.summary}")
        return result

    def _find(self, action_id: str) -> Optional[QueuedAction]:
        with self._lock:
            self._reload()
            for action in self._queue:
                if action.id == action_id:
                    return action
        return None

    def _execute(self, action: QueuedAction):
        """Map {type, resource} to the HTTP call that applies it."""
        base = RESOURCE_ENDPOINTS[action.resource]
        payload = {k: v for k, v in action.data.items() if k != 'id'}
        resource_id = action.data.get('id')

        if action.type == 'CREATE':
            return self.api.create(base, payload)

        if action.resource == 'profile':
            endpoint = base
        else:
            if not resource_id:
                raise FastingAPIError(f"{action.type} {action.resource} has no id")
            endpoint = f"{base}/{resource_id}"

        if action.type == 'UPDATE':
            return self.api.update(endpoint, payload)
        return self.api.delete(endpoint)

    def _record_success(self, action: QueuedAction, response) -> None:
        with self._lock:
            self._reload()
            self._queue = [a for a in self._queue if a.id != action.id]

            temp_id = action.data.get('id')
            if action.type == 'CREATE' and is_temp_id(temp_id) and isinstance(response, dict) and response.get('id'):
                server_id = response['id']
                for pending in self._queue:
                    if pending.data.get('id') == temp_id:
                        pending.data['id'] = server_id
                logger.debug(f"Remapped {temp_id} to {server_id} in queued actions")

            self._persist()

    def _record_failure(self, action: QueuedAction, error: FastingAPIError, result: SyncResult) -> None:
        with self._lock:
            self._reload()
            stored = next((a for a in self._queue if a.id == action.id), None)
            if stored is None:
                logger.info(f"Offline action {action.id} was removed during sync")
                return
            stored.retries += 1
            action.retries = stored.retries
            dropped = action.retries >= MAX_RETRIES
            if dropped:
                self._queue = [a for a in self._queue if a.id != action.id]
                dead_letter = self.local_store.get(STORE_NAMESPACE, 'dead_letter', [])
                dead_letter.append({**action.to_dict(), 'error': error.message})
                self.local_store.set(STORE_NAMESPACE, 'dead_letter', dead_letter[-DEAD_LETTER_LIMIT:])
            self._persist()

        if dropped:
            result.dropped += 1
            logger.error(
                f"Dropped offline {action.type} {action.resource} ({action.id}) "
                f"after {MAX_RETRIES} attempts: {error.message}"
            )
            if self.notifier:
                self.notifier.error(
                    'An offline change could not be synced',
                    description=f"{action.type.lower()} {action.resource}: {error.message}",
                )
        else:
            result.retried += 1
            logger.warning(
                f"Offline {action.type} {action.resource} ({action.id}) failed "
                f"(attempt {action.retries}/{MAX_RETRIES}): {error.message}"
            )

    def _persist(self) -> None:
        self.local_store.set(STORE_NAMESPACE, 'queue', [a.to_dict() for a in self._queue])
