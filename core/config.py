"""Process configuration for the identity-gated API server."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Tuple

from core.env import env_bool, env_float, env_int, env_list, env_str
from core.env_utils import require_env_vars

DEFAULT_PORT = 7777
DEFAULT_BASE_URL = "http://localhost:7777"
DEFAULT_PAYMENT_PROVIDER_URL = "https://api.payments.example.com"
DEFAULT_UPLOAD_TIMEOUT_SECONDS = 2 * 60 * 60
DEFAULT_AUTH_MAX_CLOCK_SKEW_SECONDS = 300
MAX_BODY_BYTES = 1024 * 1024 * 1024

EMAIL_CERTIFICATE_TYPE = "exOl3KM0dIJ04EW5pZgbZmPag6MdJXd3/a1enmUU/BA="
EMAIL_CERTIFIER = "03285263f06139b66fb27f51cf8a92e9dd007c4c4b83876ad6c3e7028db450a4c2"
EMAIL_FIELD = "email"

NETWORK_MAINNET = "mainnet"
NETWORK_TESTNET = "testnet"
SUPPORTED_NETWORKS = (NETWORK_MAINNET, NETWORK_TESTNET)

REQUIRED_ENV_VARS = (
    "MAINNET_PRIVATE_KEY",
    "TESTNET_PRIVATE_KEY",
    "MAINNET_PAYMENT_API_KEY",
    "TESTNET_PAYMENT_API_KEY",
)


@dataclass(frozen=True)
class CertificateRequirements:
    """Certificate types (and the fields to reveal) plus trusted certifiers."""

    types: Dict[str, Tuple[str, ...]] = field(default_factory=lambda: {EMAIL_CERTIFICATE_TYPE: (EMAIL_FIELD,)})
    certifiers: Tuple[str, ...] = (EMAIL_CERTIFIER,)

    def allows(self, certificate_type: str, certifier: str) -> bool:
        return certificate_type in self.types and certifier in self.certifiers

    def to_payload(self) -> dict:
        return {
            "types": {name: list(fields) for name, fields in self.types.items()},
            "certifiers": list(self.certifiers),
        }


@dataclass(frozen=True)
class ServerConfig:
    mainnet_private_key: str
    testnet_private_key: str
    mainnet_payment_api_key: str
    testnet_payment_api_key: str
    base_url: str = DEFAULT_BASE_URL
    payment_provider_url: str = DEFAULT_PAYMENT_PROVIDER_URL
    port: int = DEFAULT_PORT
    enable_cluster_bootstrap: bool = False
    upload_timeout_seconds: float = DEFAULT_UPLOAD_TIMEOUT_SECONDS
    auth_max_clock_skew_seconds: int = DEFAULT_AUTH_MAX_CLOCK_SKEW_SECONDS
    require_certificates: bool = False
    upload_storage_dir: Path = Path("uploads")
    max_body_bytes: int = MAX_BODY_BYTES
    certificates: CertificateRequirements = field(default_factory=CertificateRequirements)

    def private_key_for(self, network: str) -> str:
        return self.mainnet_private_key if network == NETWORK_MAINNET else self.testnet_private_key

    def payment_api_key_for(self, network: str) -> str:
        return self.mainnet_payment_api_key if network == NETWORK_MAINNET else self.testnet_payment_api_key


def load_server_config() -> ServerConfig:
    """Build the server configuration from the environment.

    Raises ``ConfigurationError`` when any signing or payment key is missing,
    so startup can abort before a socket is bound.
    """
    require_env_vars(REQUIRED_ENV_VARS, context="server")

    certifiers = tuple(env_list("EMAIL_CERTIFIERS", [EMAIL_CERTIFIER]))
    return ServerConfig(
        mainnet_private_key=env_str("MAINNET_PRIVATE_KEY") or "",
        testnet_private_key=env_str("TESTNET_PRIVATE_KEY") or "",
        mainnet_payment_api_key=env_str("MAINNET_PAYMENT_API_KEY") or "",
        testnet_payment_api_key=env_str("TESTNET_PAYMENT_API_KEY") or "",
        base_url=env_str("SERVER_BASEURL", DEFAULT_BASE_URL) or DEFAULT_BASE_URL,
        payment_provider_url=env_str("PAYMENT_PROVIDER_BASE_URL", DEFAULT_PAYMENT_PROVIDER_URL)
        or DEFAULT_PAYMENT_PROVIDER_URL,
        port=env_int("PORT", DEFAULT_PORT, minimum=1),
        enable_cluster_bootstrap=env_bool("ENABLE_CLUSTER_BOOTSTRAP", False),
        upload_timeout_seconds=env_float("UPLOAD_TIMEOUT_SECONDS", float(DEFAULT_UPLOAD_TIMEOUT_SECONDS), minimum=1.0),
        auth_max_clock_skew_seconds=env_int(
            "AUTH_MAX_CLOCK_SKEW_SECONDS", DEFAULT_AUTH_MAX_CLOCK_SKEW_SECONDS, minimum=1
        ),
        require_certificates=env_bool("REQUIRE_CERTIFICATES", False),
        upload_storage_dir=Path(env_str("UPLOAD_STORAGE_DIR", "uploads") or "uploads"),
        certificates=CertificateRequirements(certifiers=certifiers),
    )


__all__ = [
    "CertificateRequirements",
    "EMAIL_CERTIFICATE_TYPE",
    "EMAIL_CERTIFIER",
    "EMAIL_FIELD",
    "MAX_BODY_BYTES",
    "NETWORK_MAINNET",
    "NETWORK_TESTNET",
    "SUPPORTED_NETWORKS",
    "ServerConfig",
    "load_server_config",
]
