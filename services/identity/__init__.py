"""Cryptographic identity: signing identities, request proofs and certificates."""

from .certificates import (
    Certificate,
    CertificateError,
    decode_certificates_header,
    encode_certificates_header,
    filter_trusted_certificates,
    issue_certificate,
    verify_certificate,
)
from .proof import (
    IdentityVerificationError,
    RecentNonces,
    VerifiedIdentity,
    countersign,
    sign_request,
    verify_request,
)
from .signing import (
    InvalidIdentityKey,
    NetworkIdentities,
    SigningIdentity,
    build_network_identities,
    verify_signature,
)

__all__ = [
    "Certificate",
    "CertificateError",
    "IdentityVerificationError",
    "InvalidIdentityKey",
    "NetworkIdentities",
    "RecentNonces",
    "SigningIdentity",
    "VerifiedIdentity",
    "build_network_identities",
    "countersign",
    "decode_certificates_header",
    "encode_certificates_header",
    "filter_trusted_certificates",
    "issue_certificate",
    "sign_request",
    "verify_certificate",
    "verify_request",
    "verify_signature",
]
