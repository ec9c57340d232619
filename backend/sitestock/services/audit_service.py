# Overview: Append-only audit trail for registry and ledger events.

from __future__ import annotations

import json
from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import AuditEvent
"""
SiteStock Audit Trail Invariants (authoritative)

- Append-only log; events are never updated or deleted.
- No domain/business logic in the audit trail itself.
- Events are written inside the same DB transaction as the change they record,
  so a rolled-back ledger operation leaves no audit row behind.
"""


def append_audit_event(
    *,
    event_type: str,
    entity_type: str,
    entity_id: int,
    store_id: int | None = None,
    actor_id: str | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: dict | None = None,
) -> AuditEvent:
    ev = AuditEvent(
        store_id=store_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
        occurred_at=occurred_at,  # if None, column default applies
        note=(note[:255] if note else None),
        payload=json.dumps(payload, default=str, sort_keys=True) if payload else None,
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_audit_events(*, store_id: int | None = None, entity_type: str | None = None, limit: int = 200):
    q = AuditEvent.query
    if store_id is not None:
        q = q.filter(AuditEvent.store_id == store_id)
    if entity_type is not None:
        q = q.filter(AuditEvent.entity_type == entity_type)
    return q.order_by(AuditEvent.occurred_at.desc(), AuditEvent.id.desc()).limit(limit).all()
