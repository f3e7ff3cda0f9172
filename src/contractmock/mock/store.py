"""
ContractMock Persistent Store

In-memory record store that makes the mock server behave like a stateful
backend: created records can be fetched back, updates stick, and deleted
records stay deleted for the lifetime of the process.
"""

import logging
import threading
from typing import Any, Dict, List, Optional, Set

from ..common import coerce_int


logger = logging.getLogger(__name__)


def _normalize(record_id: Any) -> Any:
    """Storage key for an id: int when integer-like, else its text."""
    numeric = coerce_int(record_id)
    if numeric is not None:
        return numeric
    return str(record_id)


class PersistentStore:
    """
    Entity-keyed record store with tombstones and a sequential id counter.

    Ids ``7`` and ``"7"`` address the same record. Deleted ids are remembered
    in both forms and are never served again, not even by auto-generation.
    Every operation holds one re-entrant lock.

    Example:
        store = PersistentStore()
        pet = store.store_record('pet', {'name': 'Rex'})   # id allocated
        store.delete_record('pet', pet['id'])
        assert store.get_record('pet', str(pet['id'])) is None
        assert store.is_record_deleted('pet', pet['id'])
    """

    def __init__(self):
        self._records: Dict[str, Dict[Any, Dict[str, Any]]] = {}
        self._tombstones: Dict[str, Set[Any]] = {}
        self._id_counter = 0
        self._lock = threading.RLock()

    def store_record(self, entity_type: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert or replace a record.

        Args:
            entity_type: Store key (e.g. 'pet')
            record: Record data; an id is allocated when missing or None.
                Records whose id was deleted are not stored.

        Returns:
            Copy of the stored record
        """
        with self._lock:
            stored = dict(record)
            if stored.get('id') is None:
                stored['id'] = self.allocate_id(entity_type)
            elif self.is_record_deleted(entity_type, stored['id']):
                logger.warning(f"Refusing to store deleted {entity_type} {stored['id']}")
                return stored

            self._records.setdefault(entity_type, {})[_normalize(stored['id'])] = stored
            logger.debug(f"Stored {entity_type} {stored['id']}")
            return dict(stored)

    def get_record(self, entity_type: str, record_id: Any) -> Optional[Dict[str, Any]]:
        """
        Fetch a live record.

        Returns:
            Copy of the record, or None if it is absent or deleted
        """
        with self._lock:
            if record_id is None or self.is_record_deleted(entity_type, record_id):
                return None

            record = self._records.get(entity_type, {}).get(_normalize(record_id))
            return dict(record) if record is not None else None

    def update_record(
        self,
        entity_type: str,
        record_id: Any,
        updates: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """
        Merge updates into an existing record. The id never changes.

        Returns:
            Copy of the updated record, or None if there is nothing to update
        """
        with self._lock:
            existing = self.get_record(entity_type, record_id)
            if existing is None:
                return None

            updated = {**existing, **updates, 'id': existing['id']}
            self._records[entity_type][_normalize(record_id)] = updated
            logger.debug(f"Updated {entity_type} {existing['id']}")
            return dict(updated)

    def delete_record(self, entity_type: str, record_id: Any) -> bool:
        """
        Remove a record and tombstone its id.

        Returns:
            True if a live record was removed
        """
        with self._lock:
            if record_id is None or self.is_record_deleted(entity_type, record_id):
                return False

            removed = self._records.get(entity_type, {}).pop(_normalize(record_id), None)
            if removed is None:
                return False

            tombstones = self._tombstones.setdefault(entity_type, set())
            tombstones.add(str(record_id))
            numeric = coerce_int(record_id)
            if numeric is not None:
                tombstones.add(numeric)

            logger.debug(f"Deleted {entity_type} {record_id}")
            return True

    def is_record_deleted(self, entity_type: str, record_id: Any) -> bool:
        """Whether an id has been deleted for an entity type."""
        if record_id is None:
            return False

        with self._lock:
            tombstones = self._tombstones.get(entity_type)
            if not tombstones:
                return False
            if str(record_id) in tombstones:
                return True
            numeric = coerce_int(record_id)
            return numeric is not None and numeric in tombstones

    def get_all_records(self, entity_type: str) -> List[Dict[str, Any]]:
        """Snapshot of the live records of an entity type."""
        with self._lock:
            return [dict(record) for record in self._records.get(entity_type, {}).values()]

    def allocate_id(self, entity_type: Optional[str] = None) -> int:
        """
        Next sequential id.

        Ids already live or deleted for ``entity_type`` are skipped.

        Args:
            entity_type: Entity the id is allocated for

        Returns:
            Fresh integer id
        """
        with self._lock:
            while True:
                self._id_counter += 1
                candidate = self._id_counter
                if entity_type is None:
                    return candidate
                if candidate in self._records.get(entity_type, {}):
                    continue
                if self.is_record_deleted(entity_type, candidate):
                    continue
                return candidate

    def entity_types(self) -> List[str]:
        """Entity types that have live or deleted records."""
        with self._lock:
            return sorted(set(self._records) | set(self._tombstones))

    def stats(self) -> Dict[str, Dict[str, int]]:
        """Per-entity live and deleted record counts."""
        with self._lock:
            return {
                entity_type: {
                    'records': len(self._records.get(entity_type, {})),
                    'deleted': len({_normalize(i) for i in self._tombstones.get(entity_type, ())})
                }
                for entity_type in self.entity_types()
            }
