"""Identity certificates: signed attestations binding claims to an identity key.

A certificate travels as a JSON object::

    {
        "type": "<certificate type id>",
        "subject": "<identity key of the holder>",
        "certifier": "<identity key of the issuer>",
        "serialNumber": "<issuer assigned id>",
        "fields": {"email": "<Fernet token>"},
        "keyring": {"email": "<Fernet key revealed to this server>"},
        "signature": "<base64 DER signature of the certifier>"
    }

The certifier signs the canonical JSON of everything except ``keyring`` and
``signature``. Field values stay encrypted until the holder reveals the field
key in ``keyring``.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from cryptography.fernet import Fernet, InvalidToken

from core.config import CertificateRequirements
from services.identity.signing import SigningIdentity, verify_signature

logger = logging.getLogger(__name__)

_SIGNED_KEYS = ("type", "subject", "certifier", "serialNumber", "fields")


class CertificateError(ValueError):
    """Raised when a certificate cannot be trusted or decoded."""


@dataclass(frozen=True)
class Certificate:
    certificate_type: str
    subject: str
    certifier: str
    serial_number: str
    decrypted_fields: Mapping[str, Any] = field(default_factory=dict)


def _canonical_bytes(payload: Mapping[str, Any]) -> bytes:
    signed = {key: payload.get(key) for key in _SIGNED_KEYS}
    return json.dumps(signed, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def issue_certificate(
    certifier: SigningIdentity,
    *,
    subject: str,
    certificate_type: str,
    claims: Mapping[str, str],
    serial_number: str,
) -> Dict[str, Any]:
    """Encrypt ``claims`` and sign them as ``certifier``; returns the wire form with a full keyring."""
    fields: Dict[str, str] = {}
    keyring: Dict[str, str] = {}
    for name, value in claims.items():
        key = Fernet.generate_key()
        fields[name] = Fernet(key).encrypt(str(value).encode("utf-8")).decode("ascii")
        keyring[name] = key.decode("ascii")
    payload: Dict[str, Any] = {
        "type": certificate_type,
        "subject": subject,
        "certifier": certifier.identity_key,
        "serialNumber": serial_number,
        "fields": fields,
    }
    payload["signature"] = base64.b64encode(certifier.sign(_canonical_bytes(payload))).decode("ascii")
    payload["keyring"] = keyring
    return payload


def encode_certificates_header(certificates: Sequence[Mapping[str, Any]]) -> str:
    return base64.b64encode(json.dumps(list(certificates)).encode("utf-8")).decode("ascii")


def decode_certificates_header(value: Optional[str]) -> List[Mapping[str, Any]]:
    """Parse the ``X-Certificates`` header; malformed input yields no certificates."""
    if not value:
        return []
    try:
        decoded = json.loads(base64.b64decode(value, validate=True))
    except (binascii.Error, ValueError, UnicodeDecodeError, RecursionError):
        logger.info("Ignoring malformed certificate header.")
        return []
    if not isinstance(decoded, list):
        return []
    return [item for item in decoded if isinstance(item, dict)]


def _decrypt_field(name: str, token: Any, keyring: Mapping[str, Any]) -> str:
    key = keyring.get(name)
    if not isinstance(key, str) or not isinstance(token, str):
        raise CertificateError(f"Field '{name}' was not revealed.")
    try:
        return Fernet(key.encode("ascii")).decrypt(token.encode("ascii")).decode("utf-8")
    except (InvalidToken, ValueError, UnicodeError) as exc:
        raise CertificateError(f"Field '{name}' could not be decrypted.") from exc


def verify_certificate(
    payload: Mapping[str, Any],
    *,
    subject: str,
    requirements: CertificateRequirements,
) -> Certificate:
    """Validate one certificate for ``subject`` and decrypt its requested fields."""
    certificate_type = payload.get("type")
    certifier = payload.get("certifier")
    if not isinstance(certificate_type, str) or not isinstance(certifier, str):
        raise CertificateError("Certificate is missing its type or certifier.")
    if not requirements.allows(certificate_type, certifier):
        raise CertificateError("Certificate type or certifier is not trusted.")
    if payload.get("subject") != subject:
        raise CertificateError("Certificate subject does not match the caller.")

    signature = payload.get("signature")
    if not isinstance(signature, str):
        raise CertificateError("Certificate is not signed.")
    try:
        signature_bytes = base64.b64decode(signature, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CertificateError("Certificate signature is not valid base64.") from exc
    if not signature_bytes or not verify_signature(certifier, _canonical_bytes(payload), signature_bytes):
        raise CertificateError("Certificate signature does not verify.")

    fields = payload.get("fields") or {}
    keyring = payload.get("keyring") or {}
    if not isinstance(fields, dict) or not isinstance(keyring, dict):
        raise CertificateError("Certificate fields are malformed.")
    decrypted = {
        name: _decrypt_field(name, fields[name], keyring)
        for name in requirements.types.get(certificate_type, ())
        if name in fields
    }
    return Certificate(
        certificate_type=certificate_type,
        subject=subject,
        certifier=certifier,
        serial_number=str(payload.get("serialNumber") or ""),
        decrypted_fields=decrypted,
    )


def filter_trusted_certificates(
    payloads: Iterable[Mapping[str, Any]],
    *,
    subject: str,
    requirements: CertificateRequirements,
) -> List[Certificate]:
    """Keep only certificates that pass verification; the rest count as absent."""
    trusted: List[Certificate] = []
    for payload in payloads:
        try:
            trusted.append(verify_certificate(payload, subject=subject, requirements=requirements))
        except CertificateError as exc:
            logger.info("Dropping untrusted certificate for %s: %s", subject, exc)
    return trusted


__all__ = [
    "Certificate",
    "CertificateError",
    "decode_certificates_header",
    "encode_certificates_header",
    "filter_trusted_certificates",
    "issue_certificate",
    "verify_certificate",
]
