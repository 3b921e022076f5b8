"""CloudFront signed cookies scoped to one video's path prefix."""

import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from botocore.signers import CloudFrontSigner
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from streamvault.core.logger import get_logger

logger = get_logger(__name__)


class SigningError(Exception):
    """No credential could be produced; callers must deny, never fall back to unsigned."""


@dataclass(frozen=True)
class SignedCredential:
    cookies: dict[str, str]
    resource: str
    expires_at: datetime


def _cloudfront_b64(data: bytes) -> str:
    # CloudFront's URL-safe alphabet differs from base64.urlsafe_b64encode
    return (
        base64.b64encode(data)
        .decode("utf-8")
        .replace("+", "-")
        .replace("=", "_")
        .replace("/", "~")
    )


class CookieSigner(ABC):
    @abstractmethod
    def sign(self, resource: str, expires_at: datetime) -> SignedCredential:
        """Sign a canned-style custom policy for ``resource`` (may end in ``*``)."""

    @abstractmethod
    def resource_for_prefix(self, prefix: str) -> str:
        pass


class CloudFrontCookieSigner(CookieSigner):
    """
    Produces CloudFront-Policy / CloudFront-Signature / CloudFront-Key-Pair-Id.

    The private key is read on first use so a missing key turns into a denied
    stream rather than a failed startup.
    """

    def __init__(
        self,
        key_pair_id: Optional[str],
        domain: str,
        private_key_path: Union[str, Path, None] = None,
        private_key_pem: Optional[bytes] = None,
    ):
        self.key_pair_id = key_pair_id
        self.domain = domain.rstrip("/")
        self.private_key_path = Path(private_key_path) if private_key_path else None
        self._private_key_pem = private_key_pem
        self._private_key: Optional[RSAPrivateKey] = None

    def _load_key(self) -> RSAPrivateKey:
        if self._private_key is not None:
            return self._private_key

        pem = self._private_key_pem
        if pem is None:
            if self.private_key_path is None:
                raise SigningError("No CloudFront private key configured")
            try:
                pem = self.private_key_path.read_bytes()
            except OSError as e:
                raise SigningError(f"Cannot read CloudFront private key: {e}") from e

        try:
            key = serialization.load_pem_private_key(pem, password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise SigningError(f"Invalid CloudFront private key: {e}") from e
        if not isinstance(key, RSAPrivateKey):
            raise SigningError("CloudFront private key must be RSA")

        self._private_key = key
        return key

    def _rsa_sign(self, message: bytes) -> bytes:
        return self._load_key().sign(message, padding.PKCS1v15(), hashes.SHA1())

    def resource_for_prefix(self, prefix: str) -> str:
        return f"{self.domain}/{prefix.lstrip('/')}*"

    def sign(self, resource: str, expires_at: datetime) -> SignedCredential:
        if not self.key_pair_id:
            raise SigningError("CLOUDFRONT_KEY_PAIR_ID is not set")

        signer = CloudFrontSigner(self.key_pair_id, self._rsa_sign)
        policy = signer.build_policy(resource, expires_at).encode("utf-8")
        signature = self._rsa_sign(policy)

        logger.debug(f"Signed CloudFront policy for {resource}")
        return SignedCredential(
            cookies={
                "CloudFront-Policy": _cloudfront_b64(policy),
                "CloudFront-Signature": _cloudfront_b64(signature),
                "CloudFront-Key-Pair-Id": self.key_pair_id,
            },
            resource=resource,
            expires_at=expires_at,
        )
