from __future__ import annotations

import logging
import secrets
import uuid
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.orm import Session

from puremeds.core.errors import PermissionDenied, ResourceNotFound
from puremeds.models.entities import Complaint
from puremeds.schemas.complaint import ComplaintIn
from puremeds.services.audit import append_audit_event
from puremeds.services.catalog import get_product_by_batch
from puremeds.services.uploads import safe_suffix

logger = logging.getLogger(__name__)


def _complaint_number(db: Session) -> str:
    while True:
        candidate = f"ALT-{secrets.randbelow(10000):05d}"
        taken = db.execute(
            select(Complaint.complaint_id).where(Complaint.complaint_number == candidate)
        ).first()
        if taken is None:
            return candidate


def complaint_to_dict(complaint: Complaint) -> dict:
    return {
        "complaint_id": complaint.complaint_id,
        "complaint_number": complaint.complaint_number,
        "user_id": complaint.user_id,
        "medicine_name": complaint.medicine_name,
        "medicine_dose": complaint.medicine_dose,
        "manufacturer": complaint.manufacturer,
        "batch_code": complaint.batch_code,
        "manufacturer_date": complaint.manufacturer_date,
        "expiry_date": complaint.expiry_date,
        "store": complaint.store,
        "city": complaint.city,
        "qr_code": complaint.qr_code,
        "description": complaint.description,
        "status": complaint.status,
        "admin_remarks": complaint.admin_remarks,
        "created_at": complaint.created_at.isoformat(),
    }


def create_complaint(
    db: Session,
    payload: ComplaintIn,
    *,
    user_id: str,
    qr_image: bytes,
    suffix: str | None,
    complaint_dir: str | Path,
) -> dict:
    """File a report about a suspect medicine, keeping the photographed QR label as evidence."""
    complaint_id = str(uuid.uuid4())
    folder = Path(complaint_dir)
    folder.mkdir(parents=True, exist_ok=True)
    image_path = folder / f"{complaint_id}{safe_suffix(suffix) or '.png'}"
    image_path.write_bytes(qr_image)

    try:
        complaint = Complaint(
            complaint_id=complaint_id,
            complaint_number=_complaint_number(db),
            user_id=user_id,
            qr_code=str(image_path),
            **payload.model_dump(),
        )
        db.add(complaint)
        append_audit_event(
            db,
            actor_id=user_id,
            action_type="complaint.created",
            entity_type="complaint",
            entity_id=complaint_id,
            payload={
                "batch_code": payload.batch_code,
                "registered_batch": get_product_by_batch(db, payload.batch_code) is not None,
            },
        )
        db.commit()
    except Exception:
        db.rollback()
        image_path.unlink(missing_ok=True)
        raise

    db.refresh(complaint)
    logger.info("Complaint %s filed for batch %s", complaint.complaint_number, payload.batch_code)
    return complaint_to_dict(complaint)


def list_complaints(db: Session, user_id: str) -> list[dict]:
    rows = db.execute(
        select(Complaint).where(Complaint.user_id == user_id).order_by(Complaint.created_at.desc())
    ).scalars()
    return [complaint_to_dict(c) for c in rows]


def _owned_complaint(db: Session, complaint_id: str, user_id: str, action: str) -> Complaint:
    complaint = db.get(Complaint, complaint_id)
    if complaint is None:
        raise ResourceNotFound("Complaint not found")
    if complaint.user_id != user_id:
        raise PermissionDenied(f"You don't have permission to {action} this complaint")
    return complaint


def get_complaint(db: Session, complaint_id: str, user_id: str) -> dict:
    return complaint_to_dict(_owned_complaint(db, complaint_id, user_id, "view"))


def delete_complaint(db: Session, complaint_id: str, user_id: str) -> None:
    complaint = _owned_complaint(db, complaint_id, user_id, "delete")
    image_path = Path(complaint.qr_code)
    db.delete(complaint)
    db.commit()
    try:
        image_path.unlink(missing_ok=True)
    except OSError as exc:
        logger.error("Could not remove complaint image %s: %s", image_path, exc)
