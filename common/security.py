"""
CafePreorder - Security Utilities
==================================
JWT handling for identity-provider tokens and HMAC signature checks
for payment gateway callbacks.

Sign-up / sign-in happen at the identity provider; this service only
verifies the tokens it issues.
"""

import hmac
import hashlib
import logging
from datetime import timedelta
from typing import Optional

from jose import jwt, JWTError

from config.settings import AUTH_JWT_SECRET, AUTH_JWT_ALGORITHM, AUTH_JWT_AUDIENCE
from common.helpers import now_utc

logger = logging.getLogger("cafepreorder.security")


# ==========================================
# JWT Tokens
# ==========================================

def create_token(data: dict, expires_minutes: int = 60) -> str:
    """Create a JWT signed with the identity provider secret (dev tooling and tests)."""
    to_encode = data.copy()
    to_encode["exp"] = now_utc() + timedelta(minutes=expires_minutes)
    if AUTH_JWT_AUDIENCE and "aud" not in to_encode:
        to_encode["aud"] = AUTH_JWT_AUDIENCE
    return jwt.encode(to_encode, AUTH_JWT_SECRET, algorithm=AUTH_JWT_ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode a JWT token. Returns payload or None."""
    try:
        options = {"verify_aud": bool(AUTH_JWT_AUDIENCE)}
        return jwt.decode(
            token, AUTH_JWT_SECRET,
            algorithms=[AUTH_JWT_ALGORITHM],
            audience=AUTH_JWT_AUDIENCE,
            options=options,
        )
    except JWTError as e:
        logger.debug(f"Rejected token: {e}")
        return None


# ==========================================
# HMAC Signatures
# ==========================================

def hmac_sha256_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(secret: str, message: bytes, signature: str) -> bool:
    """Constant-time comparison of a hex HMAC-SHA256 signature."""
    if not secret or not signature:
        return False
    return hmac.compare_digest(hmac_sha256_hex(secret, message), signature)
