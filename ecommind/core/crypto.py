"""ECOMMIND — Token Encryption & Signatures.

AES-256-GCM for OAuth tokens at rest and HMAC-SHA256 for webhook
signatures and OAuth state. Stored token format is three hex strings:
{cipher, iv, tag}.
"""

import base64
import binascii
import hashlib
import hmac
import json
import os
import time
from typing import Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ecommind.config import settings
from ecommind.core.errors import (
    AuthError,
    ConfigurationError,
    TokenDecryptionError,
)

MIN_SECRET_LENGTH = 32
IV_LENGTH = 12
TAG_LENGTH = 16
STATE_TTL_SECONDS = 600


def derive_key(secret: Optional[str] = None) -> bytes:
    """Derive the 32-byte AES key from the server secret (SHA-256)."""
    secret = secret if secret is not None else settings.encryption_key
    if not secret or len(secret) < MIN_SECRET_LENGTH:
        raise ConfigurationError(
            f"ENCRYPTION_KEY must be at least {MIN_SECRET_LENGTH} characters"
        )
    return hashlib.sha256(secret.encode("utf-8")).digest()


def encrypt_token(plaintext: str, secret: Optional[str] = None) -> Dict[str, str]:
    """Encrypt a token. A fresh random IV is generated on every call."""
    key = derive_key(secret)
    iv = os.urandom(IV_LENGTH)
    # AESGCM appends the 16-byte tag to the ciphertext
    sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    return {
        "cipher": sealed[:-TAG_LENGTH].hex(),
        "iv": iv.hex(),
        "tag": sealed[-TAG_LENGTH:].hex(),
    }


def decrypt_token(payload: Dict[str, str], secret: Optional[str] = None) -> str:
    """Decrypt a {cipher, iv, tag} payload.

    Raises TokenDecryptionError on tamper, wrong key or malformed input.
    The message never carries cipher internals.
    """
    key = derive_key(secret)
    try:
        cipher = bytes.fromhex(payload["cipher"])
        iv = bytes.fromhex(payload["iv"])
        tag = bytes.fromhex(payload["tag"])
        if len(tag) != TAG_LENGTH:
            raise TokenDecryptionError()
        plaintext = AESGCM(key).decrypt(iv, cipher + tag, None)
        return plaintext.decode("utf-8")
    except (KeyError, TypeError, ValueError, InvalidTag) as e:
        raise TokenDecryptionError() from e


# ── Webhook Signatures ──


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of the raw request body."""
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def validate_webhook_signature(
    raw_body: bytes, signature: Optional[str], secret: Optional[str]
) -> bool:
    """Constant-time check of a vendor signature over the unparsed body.

    Accepts an optional ``sha256=`` prefix on the header value.
    """
    if not signature or not secret:
        return False
    if signature.startswith("sha256="):
        signature = signature[len("sha256="):]
    expected = compute_signature(raw_body, secret)
    return hmac.compare_digest(expected, signature.strip().lower())


def sign_partner_request(partner_key: str, base_string: str) -> str:
    """Shopee partner signature: hex HMAC-SHA256 of the concatenated base string."""
    return hmac.new(
        partner_key.encode("utf-8"), base_string.encode("utf-8"), hashlib.sha256
    ).hexdigest()


# ── OAuth State ──


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _unb64(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


def create_oauth_state(
    company_id: str, vendor: str, secret: Optional[str] = None
) -> str:
    """Signed, expiring state binding an OAuth round-trip to a company."""
    secret = secret or settings.effective_state_secret
    body = json.dumps(
        {"company_id": company_id, "vendor": vendor, "ts": int(time.time()),
         "nonce": os.urandom(8).hex()},
        separators=(",", ":"),
    ).encode("utf-8")
    sig = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return f"{_b64(body)}.{_b64(sig)}"


def verify_oauth_state(
    state: str, vendor: str, secret: Optional[str] = None, now: Optional[float] = None
) -> str:
    """Return the company_id bound into a state, or raise AuthError."""
    secret = secret or settings.effective_state_secret
    try:
        body_part, sig_part = state.split(".", 1)
        body = _unb64(body_part)
        sig = _unb64(sig_part)
        data = json.loads(body)
    except (ValueError, binascii.Error) as e:
        raise AuthError("Invalid OAuth state") from e

    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    if not hmac.compare_digest(expected, sig):
        raise AuthError("Invalid OAuth state")
    if data.get("vendor") != vendor:
        raise AuthError("OAuth state vendor mismatch")
    now = now if now is not None else time.time()
    if now - int(data.get("ts", 0)) > STATE_TTL_SECONDS:
        raise AuthError("OAuth state expired")
    return data["company_id"]
