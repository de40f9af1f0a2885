"""Password hashing, bearer tokens and gateway signature checks."""
import base64
import hashlib
import hmac
import json
import time
from typing import Any, Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from .config import settings

_hasher = PasswordHasher()


# --- Passwords ---

def hash_password(password: str) -> str:
    return _hasher.hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return _hasher.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


# --- Gateway signatures ---

def _same(expected: str, given: str) -> bool:
    # compare_digest rejects non-ASCII str, so compare the encoded bytes.
    return hmac.compare_digest(expected.encode(), given.encode("utf-8", "surrogatepass"))


def payment_signature(gateway_order_id: str, gateway_payment_id: str, secret: str) -> str:
    """Hex HMAC-SHA256 of ``"<order id>|<payment id>"`` as the gateway computes it."""
    message = f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8", "surrogatepass")
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_payment_signature(gateway_order_id: str, gateway_payment_id: str,
                             signature: str, secret: str) -> bool:
    expected = payment_signature(gateway_order_id, gateway_payment_id, secret)
    return _same(expected, signature)


# --- Bearer tokens ---
# Format: base64url(json payload) "." base64url(hmac-sha256(payload part)).

def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _b64decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


def _sign(message: bytes, secret: str) -> str:
    return _b64encode(hmac.new(secret.encode(), message, hashlib.sha256).digest())


def issue_token(user_id: int, role: str, secret: str = None, ttl: int = None) -> str:
    secret = secret or settings.AUTH_SECRET
    ttl = ttl if ttl is not None else settings.TOKEN_TTL_SECONDS
    payload = {"sub": user_id, "role": role, "exp": int(time.time()) + ttl}
    body = _b64encode(json.dumps(payload, separators=(",", ":")).encode())
    return f"{body}.{_sign(body.encode(), secret)}"


def decode_token(token: str, secret: str = None) -> Optional[dict[str, Any]]:
    """Return the payload of a valid, unexpired token, otherwise None."""
    secret = secret or settings.AUTH_SECRET
    try:
        body, signature = token.split(".")
    except ValueError:
        return None
    if not _same(_sign(body.encode(), secret), signature):
        return None
    try:
        payload = json.loads(_b64decode(body))
    except ValueError:
        return None
    if not isinstance(payload, dict) or payload.get("exp", 0) < time.time():
        return None
    return payload
