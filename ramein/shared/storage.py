import os
import tempfile
from datetime import datetime
from typing import Optional


def ensure_dir(path: str) -> None:
    """Create directory if missing (mkdir -p equivalent)."""
    os.makedirs(path, exist_ok=True)


def write_atomic(path: str, data, mode: str = "wb") -> None:
    """Write data to a temporary file then atomically rename to target path."""
    dir_path = os.path.dirname(path)
    ensure_dir(dir_path)
    fd, tmp_path = tempfile.mkstemp(dir=dir_path)
    try:
        with os.fdopen(fd, mode) as f:
            f.write(data)
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


def certificate_relative_path(
    event_id: int, issued_at: datetime, certificate_number: str
) -> str:
    return os.path.join(
        str(issued_at.year), str(event_id), f"{certificate_number}.pdf"
    )


def build_certificate_public_url(relative_path: Optional[str]) -> Optional[str]:
    if not relative_path:
        return None
    return "/certificates/" + relative_path.replace(os.sep, "/")


def certificate_file_path(site_root: str, certificate_url: Optional[str]) -> Optional[str]:
    """Map a ``/certificates/...`` URL back to its file under ``site_root``."""
    if not certificate_url or not certificate_url.startswith("/certificates/"):
        return None
    relative = certificate_url[len("/certificates/"):]
    root = os.path.abspath(os.path.join(site_root, "certificates"))
    candidate = os.path.abspath(os.path.join(root, relative))
    if os.path.commonpath([root, candidate]) != root:
        return None
    return candidate
