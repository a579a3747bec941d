"""
Append-only store of published assessment reports, keyed by (user_id, version)

Reports are frozen dataclasses carrying `user_id` and `version`. The
repository assigns the version on publish; published records are never
overwritten.
"""

import dataclasses
import logging
import threading
from typing import Dict, List, Optional, TypeVar

from src.core.errors import NotFoundError

logger = logging.getLogger(__name__)

Report = TypeVar("Report")


class AssessmentRepository:

    def __init__(self):
        self._records: Dict[str, List] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def publish(self, report: Report) -> Report:
        """
        Stamp the next version for the report's user and append it.

        Either the versioned record is stored and returned, or nothing
        is stored at all.
        """
        user_id = report.user_id
        with self._lock_for(user_id):
            history = self._records.setdefault(user_id, [])
            versioned = dataclasses.replace(report, version=len(history) + 1)
            history.append(versioned)
        logger.info("Published assessment %s v%d", user_id, versioned.version)
        return versioned

    def latest(self, user_id: str) -> Optional[Report]:
        history = self._records.get(user_id)
        return history[-1] if history else None

    def get(self, user_id: str, version: int) -> Report:
        history = self._records.get(user_id, [])
        if not 1 <= version <= len(history):
            raise NotFoundError(f"No assessment version {version} for user {user_id!r}")
        return history[version - 1]

    def history(self, user_id: str) -> List[Report]:
        """All published versions for a user, oldest first"""
        return list(self._records.get(user_id, []))

    def users(self) -> List[str]:
        return sorted(self._records)

    def _lock_for(self, user_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = self._locks[user_id] = threading.Lock()
            return lock
