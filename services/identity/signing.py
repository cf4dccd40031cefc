"""secp256k1 signing identities.

The server holds one identity per network (mainnet, testnet). Both are built
once at startup and shared read-only by every request.
"""

from __future__ import annotations

import binascii
from dataclasses import dataclass, field
from typing import Dict, Iterator, Mapping

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from core.config import NETWORK_MAINNET, SUPPORTED_NETWORKS, ServerConfig

_CURVE = ec.SECP256K1()
_ALGORITHM = ec.ECDSA(hashes.SHA256())


class InvalidIdentityKey(ValueError):
    """Raised when an identity key or private key cannot be decoded."""


def _load_private_key(private_key_hex: str) -> ec.EllipticCurvePrivateKey:
    try:
        secret = int(private_key_hex.strip(), 16)
        return ec.derive_private_key(secret, _CURVE)
    except ValueError as exc:
        raise InvalidIdentityKey("Private key must be a non-zero hex scalar on secp256k1.") from exc


def load_public_key(identity_key: str) -> ec.EllipticCurvePublicKey:
    """Decode a compressed (or uncompressed) SEC1 public key in hex."""
    try:
        raw = binascii.unhexlify(identity_key.strip())
        return ec.EllipticCurvePublicKey.from_encoded_point(_CURVE, raw)
    except (binascii.Error, ValueError) as exc:
        raise InvalidIdentityKey("Identity key is not a valid secp256k1 public key.") from exc


def encode_public_key(public_key: ec.EllipticCurvePublicKey) -> str:
    return public_key.public_bytes(Encoding.X962, PublicFormat.CompressedPoint).hex()


def verify_signature(identity_key: str, message: bytes, signature: bytes) -> bool:
    """Check a DER ECDSA-SHA256 signature against ``identity_key``."""
    try:
        public_key = load_public_key(identity_key)
    except InvalidIdentityKey:
        return False
    try:
        public_key.verify(signature, message, _ALGORITHM)
    except InvalidSignature:
        return False
    return True


@dataclass(frozen=True)
class SigningIdentity:
    network: str
    _private_key: ec.EllipticCurvePrivateKey = field(repr=False, compare=False)
    identity_key: str = ""

    @classmethod
    def from_private_key_hex(cls, private_key_hex: str, *, network: str) -> "SigningIdentity":
        private_key = _load_private_key(private_key_hex)
        return cls(
            network=network,
            _private_key=private_key,
            identity_key=encode_public_key(private_key.public_key()),
        )

    @classmethod
    def generate(cls, *, network: str = NETWORK_MAINNET) -> "SigningIdentity":
        private_key = ec.generate_private_key(_CURVE)
        return cls(network=network, _private_key=private_key, identity_key=encode_public_key(private_key.public_key()))

    def sign(self, message: bytes) -> bytes:
        return self._private_key.sign(message, _ALGORITHM)

    def verify(self, message: bytes, signature: bytes) -> bool:
        return verify_signature(self.identity_key, message, signature)

    def private_scalar_bytes(self) -> bytes:
        """Raw private scalar, used to derive local secrets such as upload URL keys."""
        return self._private_key.private_numbers().private_value.to_bytes(32, "big")


class NetworkIdentities(Mapping[str, SigningIdentity]):
    """Read-only mapping of network name to the server's signing identity."""

    def __init__(self, identities: Mapping[str, SigningIdentity]) -> None:
        self._identities: Dict[str, SigningIdentity] = dict(identities)

    def __getitem__(self, network: str) -> SigningIdentity:
        return self._identities[network]

    def __iter__(self) -> Iterator[str]:
        return iter(self._identities)

    def __len__(self) -> int:
        return len(self._identities)

    @property
    def primary(self) -> SigningIdentity:
        return self._identities[NETWORK_MAINNET]

    def public_keys(self) -> Dict[str, str]:
        return {network: identity.identity_key for network, identity in self._identities.items()}


def build_network_identities(config: ServerConfig) -> NetworkIdentities:
    return NetworkIdentities(
        {
            network: SigningIdentity.from_private_key_hex(config.private_key_for(network), network=network)
            for network in SUPPORTED_NETWORKS
        }
    )


__all__ = [
    "InvalidIdentityKey",
    "NetworkIdentities",
    "SigningIdentity",
    "build_network_identities",
    "encode_public_key",
    "load_public_key",
    "verify_signature",
]
