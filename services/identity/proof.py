"""Request identity proofs.

A caller proves control of its identity key by signing a challenge that binds
the server base URL, the server identity for the chosen network, the request
line, a caller nonce, a timestamp and the body digest.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import secrets
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

from core.config import NETWORK_MAINNET, SUPPORTED_NETWORKS, CertificateRequirements
from services.identity.certificates import (
    Certificate,
    decode_certificates_header,
    encode_certificates_header,
    filter_trusted_certificates,
)
from services.identity.signing import (
    InvalidIdentityKey,
    NetworkIdentities,
    SigningIdentity,
    load_public_key,
    verify_signature,
)

HEADER_IDENTITY_KEY = "x-identity-key"
HEADER_NONCE = "x-auth-nonce"
HEADER_TIMESTAMP = "x-auth-timestamp"
HEADER_SIGNATURE = "x-signature"
HEADER_NETWORK = "x-network"
HEADER_CERTIFICATES = "x-certificates"
HEADER_SERVER_IDENTITY_KEY = "x-server-identity-key"
HEADER_SERVER_SIGNATURE = "x-server-signature"


class IdentityVerificationError(Exception):
    """Authentication failure; ``code`` is safe to return to the caller."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass(frozen=True)
class VerifiedIdentity:
    identity_key: str
    network: str
    nonce: str
    certificates: Tuple[Certificate, ...] = ()

    def certificates_matching(self, certificate_type: str, certifier: str) -> Tuple[Certificate, ...]:
        return tuple(
            cert
            for cert in self.certificates
            if cert.certificate_type == certificate_type and cert.certifier == certifier
        )


class RecentNonces:
    """Remembers accepted (identity key, nonce) pairs until their proof would expire anyway.

    Bounded by ``max_entries``; the oldest pairs are forgotten first.
    """

    def __init__(self, ttl_seconds: float, *, max_entries: int = 100_000) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._lock = threading.Lock()
        self._seen: "OrderedDict[Tuple[str, str], float]" = OrderedDict()

    def remember(self, identity_key: str, nonce: str, *, now: float) -> bool:
        """Record the pair; False when it was already seen inside the window."""
        key = (identity_key, nonce)
        with self._lock:
            while self._seen:
                _, seen_at = next(iter(self._seen.items()))
                if now - seen_at <= self._ttl and len(self._seen) < self._max_entries:
                    break
                self._seen.popitem(last=False)
            if key in self._seen:
                return False
            self._seen[key] = now
            return True

    def __len__(self) -> int:
        return len(self._seen)


def build_challenge(
    *,
    base_url: str,
    server_identity_key: str,
    method: str,
    path: str,
    nonce: str,
    timestamp: str,
    body: bytes,
) -> bytes:
    parts = (
        base_url.rstrip("/"),
        server_identity_key,
        method.upper(),
        path,
        nonce,
        timestamp,
        hashlib.sha256(body or b"").hexdigest(),
    )
    return "\n".join(parts).encode("utf-8")


def sign_request(
    caller: SigningIdentity,
    *,
    base_url: str,
    server_identity_key: str,
    method: str,
    path: str,
    body: bytes = b"",
    network: str = NETWORK_MAINNET,
    certificates: Optional[list] = None,
    nonce: Optional[str] = None,
    timestamp_ms: Optional[int] = None,
) -> Dict[str, str]:
    """Produce the headers a client sends to authenticate one request."""
    nonce = nonce or secrets.token_urlsafe(16)
    timestamp = str(timestamp_ms if timestamp_ms is not None else int(time.time() * 1000))
    challenge = build_challenge(
        base_url=base_url,
        server_identity_key=server_identity_key,
        method=method,
        path=path,
        nonce=nonce,
        timestamp=timestamp,
        body=body,
    )
    headers = {
        HEADER_IDENTITY_KEY: caller.identity_key,
        HEADER_NONCE: nonce,
        HEADER_TIMESTAMP: timestamp,
        HEADER_SIGNATURE: base64.b64encode(caller.sign(challenge)).decode("ascii"),
        HEADER_NETWORK: network,
    }
    if certificates:
        headers[HEADER_CERTIFICATES] = encode_certificates_header(certificates)
    return headers


def _require_header(headers: Mapping[str, str], name: str) -> str:
    value = (headers.get(name) or "").strip()
    if not value:
        raise IdentityVerificationError("auth.proof_missing", "Identity proof headers are missing.")
    return value


def verify_request(
    headers: Mapping[str, str],
    *,
    method: str,
    path: str,
    body: bytes,
    base_url: str,
    identities: NetworkIdentities,
    requirements: CertificateRequirements,
    max_clock_skew_seconds: int,
    require_certificates: bool = False,
    seen_nonces: Optional[RecentNonces] = None,
    now: Optional[float] = None,
) -> VerifiedIdentity:
    """Verify the identity proof carried by ``headers`` or raise IdentityVerificationError."""
    network = (headers.get(HEADER_NETWORK) or NETWORK_MAINNET).strip().lower()
    if network not in SUPPORTED_NETWORKS:
        raise IdentityVerificationError("auth.network_unsupported", "Requested network is not supported.")

    identity_key = _require_header(headers, HEADER_IDENTITY_KEY)
    nonce = _require_header(headers, HEADER_NONCE)
    timestamp = _require_header(headers, HEADER_TIMESTAMP)
    signature_raw = _require_header(headers, HEADER_SIGNATURE)

    try:
        load_public_key(identity_key)
    except InvalidIdentityKey:
        raise IdentityVerificationError("auth.identity_key_invalid", "Identity key is malformed.") from None

    try:
        issued_at = int(timestamp) / 1000.0
    except ValueError:
        raise IdentityVerificationError("auth.timestamp_invalid", "Identity proof timestamp is malformed.") from None
    current = time.time() if now is None else now
    if abs(current - issued_at) > max_clock_skew_seconds:
        raise IdentityVerificationError("auth.proof_expired", "Identity proof is outside the accepted time window.")

    try:
        signature = base64.b64decode(signature_raw, validate=True)
    except (binascii.Error, ValueError):
        raise IdentityVerificationError("auth.signature_invalid", "Identity proof signature is malformed.") from None

    server_identity = identities[network]
    challenge = build_challenge(
        base_url=base_url,
        server_identity_key=server_identity.identity_key,
        method=method,
        path=path,
        nonce=nonce,
        timestamp=timestamp,
        body=body,
    )
    if not verify_signature(identity_key, challenge, signature):
        raise IdentityVerificationError("auth.signature_invalid", "Identity proof signature does not verify.")
    if seen_nonces is not None and not seen_nonces.remember(identity_key, nonce, now=current):
        raise IdentityVerificationError("auth.nonce_reused", "Identity proof was already used.")

    certificates = filter_trusted_certificates(
        decode_certificates_header(headers.get(HEADER_CERTIFICATES)),
        subject=identity_key,
        requirements=requirements,
    )
    if require_certificates and not certificates:
        raise IdentityVerificationError(
            "auth.certificate_required", "A certificate from a trusted certifier is required."
        )

    return VerifiedIdentity(
        identity_key=identity_key,
        network=network,
        nonce=nonce,
        certificates=tuple(certificates),
    )


def countersign(identity: SigningIdentity, *, nonce: str, status_code: int) -> Dict[str, str]:
    """Headers proving the response came from the server identity the caller addressed."""
    message = f"{nonce}\n{status_code}".encode("utf-8")
    return {
        HEADER_SERVER_IDENTITY_KEY: identity.identity_key,
        HEADER_SERVER_SIGNATURE: base64.b64encode(identity.sign(message)).decode("ascii"),
    }


__all__ = [
    "HEADER_CERTIFICATES",
    "HEADER_IDENTITY_KEY",
    "HEADER_NETWORK",
    "HEADER_NONCE",
    "HEADER_SERVER_IDENTITY_KEY",
    "HEADER_SERVER_SIGNATURE",
    "HEADER_SIGNATURE",
    "HEADER_TIMESTAMP",
    "IdentityVerificationError",
    "RecentNonces",
    "VerifiedIdentity",
    "build_challenge",
    "countersign",
    "sign_request",
    "verify_request",
]
