from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from puremeds.models.entities import AuditLog


def _event_hash(prev_hash: str | None, action_type: str, entity_type: str, entity_id: str,
                canonical_payload: str, event_time: datetime) -> str:
    base = f"{prev_hash or ''}|{action_type}|{entity_type}|{entity_id}|{canonical_payload}|{event_time.isoformat()}"
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


def append_audit_event(
    db: Session,
    *,
    actor_id: str,
    action_type: str,
    entity_type: str,
    entity_id: str,
    payload: dict,
) -> str:
    """Stage a hash-chained audit row; the caller owns the commit."""
    prev = db.execute(
        select(AuditLog.sequence_no, AuditLog.event_hash)
        .order_by(AuditLog.sequence_no.desc())
        .limit(1)
    ).first()

    canonical_payload = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    event_time = datetime.now(timezone.utc)
    prev_hash = prev.event_hash if prev else None
    event_hash = _event_hash(prev_hash, action_type, entity_type, entity_id, canonical_payload, event_time)

    db.add(
        AuditLog(
            actor_id=actor_id,
            action_type=action_type,
            entity_type=entity_type,
            entity_id=entity_id,
            event_time=event_time,
            sequence_no=(prev.sequence_no + 1) if prev else 1,
            payload=json.loads(canonical_payload),
            prev_hash=prev_hash,
            event_hash=event_hash,
        )
    )
    db.flush()
    return event_hash


def list_audit_events(
    db: Session,
    *,
    limit: int = 200,
    action_type: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
) -> list[dict]:
    stmt = select(AuditLog)
    if action_type is not None:
        stmt = stmt.where(AuditLog.action_type == action_type)
    if entity_type is not None:
        stmt = stmt.where(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        stmt = stmt.where(AuditLog.entity_id == entity_id)

    rows = db.execute(stmt.order_by(AuditLog.sequence_no.desc()).limit(limit)).scalars()
    return [
        {
            "audit_id": row.audit_id,
            "sequence_no": row.sequence_no,
            "actor_id": row.actor_id,
            "action_type": row.action_type,
            "entity_type": row.entity_type,
            "entity_id": row.entity_id,
            "event_time": row.event_time.isoformat(),
            "payload": row.payload,
            "prev_hash": row.prev_hash,
            "event_hash": row.event_hash,
        }
        for row in rows
    ]
