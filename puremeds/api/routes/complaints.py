from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from puremeds.core.auth import AuthUser, get_current_user
from puremeds.core.config import settings
from puremeds.db.session import get_db
from puremeds.schemas.complaint import ComplaintIn
from puremeds.services.complaints import (
    create_complaint,
    delete_complaint,
    get_complaint,
    list_complaints,
)

router = APIRouter()


@router.post("", status_code=201)
async def file_complaint(
    medicine_name: str = Form(..., min_length=1),
    medicine_dose: str = Form(..., min_length=1),
    manufacturer: str = Form(..., min_length=1),
    batch_code: str = Form(..., min_length=1),
    manufacturer_date: str = Form(..., min_length=1),
    expiry_date: str = Form(..., min_length=1),
    store: str = Form(..., min_length=1),
    city: str = Form(..., min_length=1),
    description: str = Form(..., min_length=1),
    qr_code: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> dict:
    content = await qr_code.read()
    if not content:
        raise HTTPException(status_code=400, detail="QR code image is required")
    if len(content) > settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail="QR code image is too large")

    payload = ComplaintIn(
        medicine_name=medicine_name,
        medicine_dose=medicine_dose,
        manufacturer=manufacturer,
        batch_code=batch_code,
        manufacturer_date=manufacturer_date,
        expiry_date=expiry_date,
        store=store,
        city=city,
        description=description,
    )
    return create_complaint(
        db,
        payload,
        user_id=current_user.user_id,
        qr_image=content,
        suffix=Path(qr_code.filename or "").suffix,
        complaint_dir=settings.complaint_dir,
    )


@router.get("")
def my_complaints(
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> dict:
    return {"complaints": list_complaints(db, current_user.user_id)}


@router.get("/{complaint_id}")
def complaint_detail(
    complaint_id: str,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> dict:
    return get_complaint(db, complaint_id, current_user.user_id)


@router.delete("/{complaint_id}")
def withdraw_complaint(
    complaint_id: str,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> dict:
    delete_complaint(db, complaint_id, current_user.user_id)
    return {"message": "Complaint deleted successfully"}
