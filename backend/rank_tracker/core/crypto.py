from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

SECRET_TOKEN_PREFIX = "gcm1:"
NONCE_BYTES = 12
# Binds ciphertexts to the column they were written for.
API_KEY_CONTEXT = b"rank_tracker.tracker_settings.api_key"


class CredentialCryptoError(RuntimeError):
    def __init__(self, message: str, *, reason_code: str) -> None:
        super().__init__(message)
        self.reason_code = reason_code


def encrypt_secret(value: str, *, context: bytes = API_KEY_CONTEXT) -> str:
    """Encrypt ``value`` with AES-256-GCM under the master key.

    Returns ``gcm1:<base64(nonce || ciphertext || tag)>``.
    """
    nonce = os.urandom(NONCE_BYTES)
    sealed = AESGCM(get_master_key()).encrypt(nonce, value.encode("utf-8"), context)
    return SECRET_TOKEN_PREFIX + base64.urlsafe_b64encode(nonce + sealed).decode("ascii")


def decrypt_secret(token: str, *, context: bytes = API_KEY_CONTEXT) -> str:
    if not token.startswith(SECRET_TOKEN_PREFIX):
        raise CredentialCryptoError("Stored secret has an unknown format.", reason_code="invalid_credential_payload")
    try:
        raw = base64.urlsafe_b64decode(token[len(SECRET_TOKEN_PREFIX):].encode("ascii"))
    except (binascii.Error, ValueError) as exc:
        raise CredentialCryptoError("Stored secret is not valid base64.", reason_code="invalid_credential_payload") from exc
    if len(raw) <= NONCE_BYTES:
        raise CredentialCryptoError("Stored secret is truncated.", reason_code="invalid_credential_payload")

    nonce, sealed = raw[:NONCE_BYTES], raw[NONCE_BYTES:]
    try:
        plaintext = AESGCM(get_master_key()).decrypt(nonce, sealed, context)
    except InvalidTag as exc:
        raise CredentialCryptoError(
            "Stored secret does not decrypt with the configured master key.",
            reason_code="credential_key_mismatch",
        ) from exc
    return plaintext.decode("utf-8")


def get_master_key() -> bytes:
    from rank_tracker.core.config import get_settings

    raw = os.getenv("PLATFORM_MASTER_KEY", "").strip() or get_settings().platform_master_key.strip()
    if not raw:
        raise CredentialCryptoError(
            "PLATFORM_MASTER_KEY is required to store provider credentials.",
            reason_code="master_key_missing",
        )
    try:
        key = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CredentialCryptoError("PLATFORM_MASTER_KEY must be base64.", reason_code="master_key_invalid") from exc
    if len(key) != 32:
        raise CredentialCryptoError(
            "PLATFORM_MASTER_KEY must decode to 32 bytes.",
            reason_code="master_key_invalid",
        )
    return key
