from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from puremeds.core.auth import ROLE_ADMIN, ROLE_VIEWER, AuthUser, require_roles
from puremeds.db.session import get_db
from puremeds.services.audit import list_audit_events

router = APIRouter()


@router.get('/events')
def events(
    limit: int = Query(default=200, ge=1, le=1000),
    action_type: str | None = Query(default=None),
    entity_type: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(require_roles(ROLE_VIEWER, ROLE_ADMIN)),
) -> dict:
    rows = list_audit_events(
        db,
        limit=limit,
        action_type=action_type,
        entity_type=entity_type,
        entity_id=entity_id,
    )
    return {
        'rows': rows,
        'requested_by': current_user.user_id,
    }
