from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from starlette.concurrency import run_in_threadpool

from puremeds.api.deps import get_verification_engine
from puremeds.core.config import settings
from puremeds.schemas.verification import FingerprintVerifyIn
from puremeds.services.verification import VerificationEngine

router = APIRouter()


@router.post("/qrcode")
async def verify_qrcode(
    qr_code: UploadFile = File(...),
    engine: VerificationEngine = Depends(get_verification_engine),
) -> dict:
    content = await qr_code.read()
    if not content:
        raise HTTPException(status_code=400, detail="QR code image is required")
    if len(content) > settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail="QR code image is too large")

    suffix = Path(qr_code.filename or "").suffix or ".png"
    verdict = await run_in_threadpool(engine.verify_by_image, content, suffix)
    return verdict.model_dump(mode="json")


@router.post("/hash")
def verify_hash(
    payload: FingerprintVerifyIn,
    engine: VerificationEngine = Depends(get_verification_engine),
) -> dict:
    return engine.verify_by_fingerprint(payload.fingerprint).model_dump(mode="json")
