from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)


def safe_suffix(suffix: str | None) -> str:
    if not suffix:
        return ""
    suffix = suffix if suffix.startswith(".") else f".{suffix}"
    return suffix if suffix[1:].isalnum() and len(suffix) <= 8 else ""


@contextmanager
def staged_upload(directory: str | Path, content: bytes, suffix: str | None = None) -> Iterator[Path]:
    """Write ``content`` to a uniquely named file and delete it on exit.

    The file is removed exactly once whether the body returns, raises or is
    cancelled.
    """
    folder = Path(directory)
    folder.mkdir(parents=True, exist_ok=True)
    stamped_name = (
        f"qrcode-{datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%SZ')}-{uuid.uuid4().hex}"
        f"{safe_suffix(suffix)}"
    )
    path = folder / stamped_name
    try:
        path.write_bytes(content)
        yield path
    finally:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Could not remove staged upload %s: %s", path, exc)
