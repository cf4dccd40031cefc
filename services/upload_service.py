"""Signed upload URLs and upload storage."""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

_DEPLOYMENT_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,128}")
_KEY_CONTEXT = b"upload-url-v1"


class UploadSignatureError(ValueError):
    """Raised when an upload URL signature does not match its deployment."""

    code = "upload.signature_invalid"


def derive_upload_key(secret: bytes) -> bytes:
    return hashlib.sha256(_KEY_CONTEXT + secret).digest()


def sign_deployment(key: bytes, deployment_id: str) -> str:
    return hmac.new(key, deployment_id.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_deployment_signature(key: bytes, deployment_id: str, signature: str) -> None:
    if not _DEPLOYMENT_ID_PATTERN.fullmatch(deployment_id or ""):
        raise UploadSignatureError("Deployment id is malformed.")
    expected = sign_deployment(key, deployment_id)
    if not hmac.compare_digest(expected, (signature or "").lower()):
        raise UploadSignatureError("Upload URL signature is invalid.")


def build_upload_url(base_url: str, key: bytes, deployment_id: str) -> str:
    return f"{base_url.rstrip('/')}/api/v1/upload/{deployment_id}/{sign_deployment(key, deployment_id)}"


def upload_path(storage_dir: Path, deployment_id: str) -> Path:
    return storage_dir / f"{deployment_id}.bin"


__all__ = [
    "UploadSignatureError",
    "build_upload_url",
    "derive_upload_key",
    "sign_deployment",
    "upload_path",
    "verify_deployment_signature",
]
