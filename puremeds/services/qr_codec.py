from __future__ import annotations

import io
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import cv2
import numpy as np
import qrcode
from qrcode.constants import ERROR_CORRECT_H

from puremeds.core.errors import IncompletePayload, MalformedPayload, UnreadableImage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QrPayload:
    fingerprint: str
    batch_code: str
    timestamp: str | None = None

    def to_text(self) -> str:
        return json.dumps(
            {"hash": self.fingerprint, "batchId": self.batch_code, "timestamp": self.timestamp},
            separators=(",", ":"),
        )


def render_png(text: str) -> bytes:
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_H, box_size=10, border=4)
    qr.add_data(text)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer)
    return buffer.getvalue()


def encode(fingerprint: str, batch_code: str) -> bytes:
    payload = QrPayload(
        fingerprint=fingerprint,
        batch_code=batch_code,
        timestamp=datetime.now(timezone.utc).isoformat(timespec="seconds"),
    )
    return render_png(payload.to_text())


def write_qr_artifact(directory: str | Path, batch_code: str, png: bytes) -> Path:
    folder = Path(directory)
    folder.mkdir(parents=True, exist_ok=True)
    output_path = folder / f"{batch_code}.png"
    output_path.write_bytes(png)
    return output_path


def _read_symbol(img: np.ndarray | None) -> str:
    if img is None:
        raise UnreadableImage()

    detectors = [cv2.QRCodeDetector()]
    if hasattr(cv2, "QRCodeDetectorAruco"):
        detectors.append(cv2.QRCodeDetectorAruco())

    for detector in detectors:
        try:
            data, _points, _ = detector.detectAndDecode(img)
        except cv2.error as exc:
            logger.debug("QR detector %s failed: %s", type(detector).__name__, exc)
            continue
        if data:
            return data
    raise UnreadableImage()


def parse_payload(text: str) -> QrPayload:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedPayload() from exc
    if not isinstance(data, dict):
        raise MalformedPayload()

    fingerprint = data.get("hash")
    batch_code = data.get("batchId")
    if not isinstance(fingerprint, str) or not fingerprint.strip():
        raise IncompletePayload()
    if not isinstance(batch_code, str) or not batch_code.strip():
        raise IncompletePayload()

    timestamp = data.get("timestamp")
    return QrPayload(
        fingerprint=fingerprint.strip(),
        batch_code=batch_code.strip(),
        timestamp=timestamp if isinstance(timestamp, str) else None,
    )


def decode_file(path: str | Path) -> QrPayload:
    img = cv2.imread(str(path), cv2.IMREAD_COLOR)
    return parse_payload(_read_symbol(img))


def decode(image: bytes) -> QrPayload:
    if not image:
        raise UnreadableImage()
    img = cv2.imdecode(np.frombuffer(image, dtype=np.uint8), cv2.IMREAD_COLOR)
    return parse_payload(_read_symbol(img))
