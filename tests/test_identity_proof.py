import base64
import json
import time

import pytest

from core.config import EMAIL_CERTIFICATE_TYPE, CertificateRequirements
from services.identity import (
    IdentityVerificationError,
    RecentNonces,
    SigningIdentity,
    issue_certificate,
    sign_request,
    verify_request,
)
from services.identity.proof import HEADER_CERTIFICATES, HEADER_SIGNATURE

BASE_URL = "http://testserver"
PATH = "/api/v1/register"


def _headers(caller, identities, *, body=b"", network="mainnet", certificates=None, **kwargs):
    return sign_request(
        caller,
        base_url=BASE_URL,
        server_identity_key=identities[network].identity_key,
        method="POST",
        path=PATH,
        body=body,
        network=network,
        certificates=certificates,
        **kwargs,
    )


def _verify(headers, identities, requirements, *, body=b"", **kwargs):
    return verify_request(
        headers,
        method="POST",
        path=PATH,
        body=body,
        base_url=BASE_URL,
        identities=identities,
        requirements=requirements,
        max_clock_skew_seconds=300,
        **kwargs,
    )


@pytest.fixture()
def requirements(certifier):
    return CertificateRequirements(certifiers=(certifier.identity_key,))


def test_valid_proof_yields_verified_identity(caller, identities, requirements):
    headers = _headers(caller, identities, body=b'{"a": 1}')

    verified = _verify(headers, identities, requirements, body=b'{"a": 1}')

    assert verified.identity_key == caller.identity_key
    assert verified.network == "mainnet"
    assert verified.certificates == ()


def test_testnet_proof_is_bound_to_testnet_identity(caller, identities, requirements):
    headers = _headers(caller, identities, network="testnet")

    assert _verify(headers, identities, requirements).network == "testnet"

    headers["x-network"] = "mainnet"
    with pytest.raises(IdentityVerificationError) as excinfo:
        _verify(headers, identities, requirements)
    assert excinfo.value.code == "auth.signature_invalid"


def test_tampered_body_is_rejected(caller, identities, requirements):
    headers = _headers(caller, identities, body=b'{"amount": 1}')

    with pytest.raises(IdentityVerificationError) as excinfo:
        _verify(headers, identities, requirements, body=b'{"amount": 1000}')

    assert excinfo.value.code == "auth.signature_invalid"


def test_missing_headers_are_rejected(identities, requirements):
    with pytest.raises(IdentityVerificationError) as excinfo:
        _verify({}, identities, requirements)

    assert excinfo.value.code == "auth.proof_missing"


def test_unknown_network_is_rejected(caller, identities, requirements):
    headers = _headers(caller, identities)
    headers["x-network"] = "regtest"

    with pytest.raises(IdentityVerificationError) as excinfo:
        _verify(headers, identities, requirements)

    assert excinfo.value.code == "auth.network_unsupported"


def test_malformed_identity_key_is_rejected(caller, identities, requirements):
    headers = _headers(caller, identities)
    headers["x-identity-key"] = "not-a-key"

    with pytest.raises(IdentityVerificationError) as excinfo:
        _verify(headers, identities, requirements)

    assert excinfo.value.code == "auth.identity_key_invalid"


def test_stale_proof_is_rejected(caller, identities, requirements):
    stale = int((time.time() - 3600) * 1000)
    headers = _headers(caller, identities, timestamp_ms=stale)

    with pytest.raises(IdentityVerificationError) as excinfo:
        _verify(headers, identities, requirements)

    assert excinfo.value.code == "auth.proof_expired"


def test_garbage_signature_is_rejected(caller, identities, requirements):
    headers = _headers(caller, identities)
    headers[HEADER_SIGNATURE] = "***"

    with pytest.raises(IdentityVerificationError) as excinfo:
        _verify(headers, identities, requirements)

    assert excinfo.value.code == "auth.signature_invalid"


def test_trusted_certificate_is_decrypted(caller, certifier, identities, requirements):
    cert = issue_certificate(
        certifier,
        subject=caller.identity_key,
        certificate_type=EMAIL_CERTIFICATE_TYPE,
        claims={"email": "a@x.io"},
        serial_number="s1",
    )
    headers = _headers(caller, identities, certificates=[cert])

    verified = _verify(headers, identities, requirements)

    assert len(verified.certificates) == 1
    assert verified.certificates[0].decrypted_fields == {"email": "a@x.io"}
    assert verified.certificates_matching(EMAIL_CERTIFICATE_TYPE, certifier.identity_key)


def test_untrusted_certificates_are_dropped(caller, certifier, identities, requirements):
    stranger = SigningIdentity.generate()
    foreign = issue_certificate(
        stranger,
        subject=caller.identity_key,
        certificate_type=EMAIL_CERTIFICATE_TYPE,
        claims={"email": "evil@x.io"},
        serial_number="s2",
    )
    borrowed = issue_certificate(
        certifier,
        subject=stranger.identity_key,
        certificate_type=EMAIL_CERTIFICATE_TYPE,
        claims={"email": "someone@x.io"},
        serial_number="s3",
    )
    forged = dict(
        issue_certificate(
            certifier,
            subject=caller.identity_key,
            certificate_type=EMAIL_CERTIFICATE_TYPE,
            claims={"email": "a@x.io"},
            serial_number="s4",
        )
    )
    forged["serialNumber"] = "s5"
    headers = _headers(caller, identities, certificates=[foreign, borrowed, forged])

    verified = _verify(headers, identities, requirements)

    assert verified.certificates == ()


def test_malformed_certificate_header_counts_as_absent(caller, identities, requirements):
    headers = _headers(caller, identities)
    headers[HEADER_CERTIFICATES] = base64.b64encode(json.dumps({"not": "a list"}).encode()).decode()

    assert _verify(headers, identities, requirements).certificates == ()


def test_certificates_can_be_mandatory(caller, identities, requirements):
    headers = _headers(caller, identities)

    with pytest.raises(IdentityVerificationError) as excinfo:
        _verify(headers, identities, requirements, require_certificates=True)

    assert excinfo.value.code == "auth.certificate_required"


def test_deeply_nested_certificate_header_counts_as_absent(caller, identities, requirements):
    headers = _headers(caller, identities)
    headers[HEADER_CERTIFICATES] = base64.b64encode(b"[" * 5000 + b"]" * 5000).decode()

    assert _verify(headers, identities, requirements).certificates == ()


def test_replayed_proof_is_rejected(caller, identities, requirements):
    seen = RecentNonces(ttl_seconds=600)
    headers = _headers(caller, identities, nonce="once")

    _verify(headers, identities, requirements, seen_nonces=seen)
    with pytest.raises(IdentityVerificationError) as excinfo:
        _verify(headers, identities, requirements, seen_nonces=seen)

    assert excinfo.value.code == "auth.nonce_reused"


def test_same_nonce_from_another_identity_is_accepted(caller, identities, requirements):
    seen = RecentNonces(ttl_seconds=600)
    other = SigningIdentity.generate()

    _verify(_headers(caller, identities, nonce="shared"), identities, requirements, seen_nonces=seen)
    verified = _verify(_headers(other, identities, nonce="shared"), identities, requirements, seen_nonces=seen)

    assert verified.identity_key == other.identity_key


def test_recent_nonces_forget_expired_and_overflowing_entries():
    seen = RecentNonces(ttl_seconds=10, max_entries=2)

    assert seen.remember("k", "a", now=0.0)
    assert not seen.remember("k", "a", now=5.0)
    assert seen.remember("k", "a", now=20.0)
    assert seen.remember("k", "b", now=21.0)
    assert seen.remember("k", "c", now=22.0)
    assert len(seen) == 2
    assert seen.remember("k", "a", now=23.0)
