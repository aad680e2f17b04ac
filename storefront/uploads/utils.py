import re
import time
from typing import Optional


def sanitize_file_name(file_name: str) -> str:
    name = re.sub(r"[^a-z0-9._-]", "-", file_name.lower())
    name = re.sub(r"-+", "-", name)
    return name.strip("-")


def build_blob_path(prefix: str, file_name: str, now_ms: Optional[int] = None) -> str:
    now_ms = int(time.time() * 1000) if now_ms is None else now_ms
    safe_name = sanitize_file_name(file_name or "image") or "image"
    return f"{prefix}/{now_ms}-{safe_name}"
