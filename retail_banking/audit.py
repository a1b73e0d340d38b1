"""
Audit Trail Module

Hash-chained audit log of every state change. Each event stores the SHA-256
of its own content and the hash of the event before it, so editing or
removing a stored event breaks the chain and shows up in
``AuditTrail.verify_integrity()``.
"""

import hashlib
import json
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord, parse_datetime, to_storable


class AuditEventType(Enum):
    USER_CREATED = "user_created"
    USER_UPDATED = "user_updated"
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"
    PASSWORD_CHANGED = "password_changed"

    ACCOUNT_CREATED = "account_created"
    KYC_STATUS_CHANGED = "kyc_status_changed"
    ACCOUNT_STATUS_CHANGED = "account_status_changed"

    BENEFICIARY_CREATED = "beneficiary_created"
    BENEFICIARY_UPDATED = "beneficiary_updated"
    BENEFICIARY_REMOVED = "beneficiary_removed"

    TRANSACTION_POSTED = "transaction_posted"


@dataclass
class AuditEvent(StorageRecord):
    """One link of the audit chain"""
    event_type: AuditEventType
    entity_type: str  # user, account, beneficiary, transaction
    entity_id: str
    previous_hash: str
    current_hash: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    user_id: Optional[str] = None  # actor

    def __post_init__(self):
        self.metadata = to_storable(self.metadata or {})

    def calculate_hash(self) -> str:
        """SHA-256 over every field except ``current_hash`` and ``updated_at``"""
        content = {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'previous_hash': self.previous_hash,
            'user_id': self.user_id,
            'metadata': self.metadata
        }
        canonical = json.dumps(content, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(canonical.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        return self.current_hash == self.calculate_hash()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEvent':
        data = dict(data)
        data['created_at'] = parse_datetime(data['created_at'])
        data['updated_at'] = parse_datetime(data['updated_at'])
        data['event_type'] = AuditEventType(data['event_type'])
        return cls(**data)


class AuditTrail:
    """
    Append-only, hash-chained audit log

    The hash of the newest event is kept in a one-row ``audit_chain`` table.
    It is updated in the same ``storage.atomic()`` block as the event, so an
    event logged inside a money movement is rolled back with it and the head
    moves back too.
    """

    HEAD_TABLE = "audit_chain"
    HEAD_ID = "head"

    def __init__(self, storage: StorageInterface, table_name: str = "audit_events"):
        self.storage = storage
        self.table_name = table_name

    def _head(self) -> str:
        head = self.storage.load(self.HEAD_TABLE, self.HEAD_ID)
        return head['hash'] if head else ""

    def log_event(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None
    ) -> AuditEvent:
        """
        Append an event to the chain

        Args:
            event_type: What happened
            entity_type: Kind of record affected
            entity_id: ID of the record affected
            metadata: Event details; Decimals, datetimes and enums are stored as strings
            user_id: Actor who caused the change

        Returns:
            The stored AuditEvent
        """
        with self.storage.atomic():
            now = datetime.now(timezone.utc)
            event = AuditEvent(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                previous_hash=self._head(),
                current_hash="",
                metadata=metadata or {},
                user_id=user_id
            )
            event.current_hash = event.calculate_hash()
            self.storage.save(self.table_name, event.id, event.to_dict())
            self.storage.save(self.HEAD_TABLE, self.HEAD_ID, {'hash': event.current_hash})
            return event

    def get_events_for_entity(self, entity_type: str, entity_id: str) -> List[AuditEvent]:
        """Events about one record, oldest first"""
        rows = self.storage.find(self.table_name, {'entity_type': entity_type, 'entity_id': entity_id})
        return [AuditEvent.from_dict(row) for row in rows]

    def get_events_by_type(self, event_type: AuditEventType) -> List[AuditEvent]:
        rows = self.storage.find(self.table_name, {'event_type': event_type.value})
        return [AuditEvent.from_dict(row) for row in rows]

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Walk the chain from the first event

        Returns:
            ``valid``, ``total_events``, ``hash_errors`` (events whose content
            no longer matches their hash) and ``chain_breaks`` (events whose
            previous_hash does not match the event before them)
        """
        events = [AuditEvent.from_dict(row) for row in self.storage.load_all(self.table_name)]
        hash_errors = []
        chain_breaks = []

        previous_hash = ""
        for position, event in enumerate(events):
            if not event.verify_hash():
                hash_errors.append({
                    'event_id': event.id,
                    'position': position,
                    'expected_hash': event.calculate_hash(),
                    'actual_hash': event.current_hash
                })
            if event.previous_hash != previous_hash:
                chain_breaks.append({
                    'event_id': event.id,
                    'position': position,
                    'expected_previous_hash': previous_hash,
                    'actual_previous_hash': event.previous_hash
                })
            previous_hash = event.current_hash

        return {
            'valid': not hash_errors and not chain_breaks,
            'total_events': len(events),
            'hash_errors': hash_errors,
            'chain_breaks': chain_breaks
        }

    def count_events(self) -> int:
        return self.storage.count(self.table_name)
