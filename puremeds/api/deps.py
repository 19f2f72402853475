from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from puremeds.core.config import settings
from puremeds.db.session import get_db
from puremeds.services.ledger import LedgerClient
from puremeds.services.verification import SqlProductStore, VerificationEngine


def get_ledger_client(request: Request) -> LedgerClient:
    return request.app.state.ledger_client


def get_verification_engine(
    db: Session = Depends(get_db),
    ledger: LedgerClient = Depends(get_ledger_client),
) -> VerificationEngine:
    return VerificationEngine(
        store=SqlProductStore(db),
        ledger=ledger,
        upload_dir=settings.upload_dir,
    )
