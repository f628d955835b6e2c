"""Upload handling — JSON files are parsed, anything else is wrapped as text."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any

from promptbench.errors import InvalidRequestError
from promptbench.models import DataKind, UploadResult

logger = logging.getLogger("promptbench.uploads")


def parse_content(text: str, original_name: str) -> Any:
    """Parsed JSON, or {"content", "type": "text", "filename"} when the text is not JSON."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return {"content": text, "type": DataKind.TEXT.value, "filename": original_name}


def save_upload(
    original_name: str,
    raw: bytes,
    content_type: str = "",
    upload_dir: str | Path = "uploads",
    max_bytes: int = 50 * 1024 * 1024,
) -> UploadResult:
    """Store an uploaded file as ``<epoch-ms>-<name>`` and return its parsed payload.

    Raises:
        InvalidRequestError: empty name (no file) or file larger than ``max_bytes``.
    """
    if not original_name:
        raise InvalidRequestError("No file uploaded")
    if len(raw) > max_bytes:
        raise InvalidRequestError(
            "File too large", details=f"{len(raw)} bytes exceeds the {max_bytes} byte limit"
        )

    safe_name = Path(original_name).name
    stored_name = f"{int(time.time() * 1000)}-{safe_name}"
    target_dir = Path(upload_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    (target_dir / stored_name).write_bytes(raw)
    logger.debug(f"Saved upload {safe_name} ({len(raw)} bytes) as {stored_name}")

    text = raw.decode("utf-8", errors="replace")
    return UploadResult(
        filename=stored_name,
        original_name=safe_name,
        data=parse_content(text, safe_name),
        size=len(raw),
        file_type=content_type or "",
    )
