# -*- coding: utf-8 -*-
"""
Billing Provenance

SHA-256 hashing of calculation inputs and outputs, and a chained change log
of service mutations for tamper evidence.

Guarantees:
    - Calculation hashes are deterministic for identical snapshots
    - Chain hashing links mutations in sequence
    - JSON export for external audit systems

Example:
    >>> from licensebill.provenance import ProvenanceTracker
    >>> tracker = ProvenanceTracker()
    >>> log_id = tracker.record_change(
    ...     change_type="license_added",
    ...     entity_id="c-17",
    ...     details={"quantity": 5, "effective": "2025-03-01"},
    ... )
    >>> tracker.verify_chain()
    True

Author: licensebill Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel

from licensebill.models import ChangeLogEntry, ChangeType

logger = logging.getLogger(__name__)


def _canonical(value: Any) -> Any:
    """Reduce a payload to JSON-stable primitives."""
    if isinstance(value, BaseModel):
        return _canonical(value.model_dump())
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value.normalize()) if value else "0"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _canonical(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    return value


def calculation_hash(payload: Any) -> str:
    """SHA-256 of a payload serialized as canonical JSON.

    Decimals hash by value (``1.50`` and ``1.5`` agree); dates use ISO form.
    """
    serialized = json.dumps(_canonical(payload), sort_keys=True, default=str)
    return hashlib.sha256(serialized.encode()).hexdigest()


class ProvenanceTracker:
    """Chained SHA-256 log of billing service mutations.

    Attributes:
        _entries: Ordered list of change log entries.
        _last_chain_hash: Most recent chain hash for linking.
    """

    _GENESIS_HASH = hashlib.sha256(b"licensebill-ledger-genesis").hexdigest()

    def __init__(self) -> None:
        self._entries: List[ChangeLogEntry] = []
        self._last_chain_hash: str = self._GENESIS_HASH
        logger.info("ProvenanceTracker initialized")

    def record_change(
        self,
        change_type: Union[str, ChangeType],
        entity_id: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Record a mutation in the chained log.

        Args:
            change_type: Kind of mutation.
            entity_id: Client, partner or table affected.
            details: Values describing the change.

        Returns:
            The log_id of the new entry.
        """
        ct = ChangeType(change_type) if isinstance(change_type, str) else change_type
        entry = ChangeLogEntry(
            change_type=ct,
            entity_id=entity_id,
            details=_canonical(details or {}),
        )

        entry_hash = self._hash_dict(self._entry_data(entry))
        chain_hash = self._build_next_chain_hash(entry_hash)
        entry.provenance_hash = chain_hash

        self._entries.append(entry)
        self._last_chain_hash = chain_hash

        logger.debug("Recorded provenance: %s %s %s", ct.value, entity_id, entry.log_id)
        return entry.log_id

    def get_audit_trail(
        self,
        entity_id: Optional[str] = None,
        change_type: Optional[Union[str, ChangeType]] = None,
        limit: int = 100,
    ) -> List[ChangeLogEntry]:
        """Get the audit trail, newest first, optionally filtered."""
        entries = list(self._entries)
        if entity_id is not None:
            entries = [e for e in entries if e.entity_id == entity_id]
        if change_type is not None:
            ct = ChangeType(change_type) if isinstance(change_type, str) else change_type
            entries = [e for e in entries if e.change_type == ct]
        entries.reverse()
        return entries[:limit]

    def verify_chain(self, entries: Optional[List[ChangeLogEntry]] = None) -> bool:
        """Recompute chain hashes from genesis and compare with stored ones.

        Returns:
            True if the chain is intact, False if tampered.
        """
        check_entries = entries if entries is not None else self._entries
        current_hash = self._GENESIS_HASH

        for entry in check_entries:
            entry_hash = self._hash_dict(self._entry_data(entry))
            combined = f"{current_hash}:{entry_hash}"
            expected_hash = hashlib.sha256(combined.encode()).hexdigest()
            if entry.provenance_hash != expected_hash:
                logger.warning("Chain verification failed at entry %s", entry.log_id)
                return False
            current_hash = expected_hash

        return True

    def export_json(self) -> str:
        """Export all provenance records as a JSON string."""
        records = [entry.model_dump(mode="json") for entry in self._entries]
        return json.dumps(records, indent=2, default=str)

    @property
    def entry_count(self) -> int:
        return len(self._entries)

    @property
    def last_hash(self) -> str:
        return self._last_chain_hash

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _entry_data(entry: ChangeLogEntry) -> Dict[str, Any]:
        return {
            "type": entry.change_type.value,
            "entity": entry.entity_id,
            "details": entry.details,
            "timestamp": entry.timestamp.isoformat(),
        }

    def _build_next_chain_hash(self, entry_hash: str) -> str:
        combined = f"{self._last_chain_hash}:{entry_hash}"
        return hashlib.sha256(combined.encode()).hexdigest()

    @staticmethod
    def _hash_dict(data: Dict[str, Any]) -> str:
        serialized = json.dumps(data, sort_keys=True, default=str)
        return hashlib.sha256(serialized.encode()).hexdigest()


__all__ = [
    "calculation_hash",
    "ProvenanceTracker",
]
