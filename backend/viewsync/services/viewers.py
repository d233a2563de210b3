"""
Viewer identity. The browser keeps its Viewer in the "viewer" cookie and
reuses it for every video it watches.
"""
from typing import Optional
from pydantic import ValidationError
from viewsync.models.video import Viewer
import base64
import logging

logger = logging.getLogger(__name__)

VIEWER_KEY = "viewer"


def new_viewer(name: str) -> Viewer:
    return Viewer(name=name.strip())


def encode_viewer(viewer: Viewer) -> str:
    # Padding is dropped so the cookie value never needs quoting
    encoded = base64.urlsafe_b64encode(viewer.model_dump_json().encode("utf-8")).decode("ascii")
    return encoded.rstrip("=")


def decode_viewer(raw: Optional[str]) -> Optional[Viewer]:
    """None when the cookie is missing or unreadable"""
    if not raw:
        return None
    try:
        padded = raw + "=" * (-len(raw) % 4)
        return Viewer.model_validate_json(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (ValueError, ValidationError) as e:
        logger.warning(f"Ignoring unreadable viewer identity: {e}")
        return None
