"""JWT access token validation (ES256).

Tokens are issued by the organization's identity provider; this service
only verifies them.  Claims used: sub (user UUID), role (admin|learner),
plus the standard iss, aud, exp, iat, jti.

Key management:
  - JWT_PUBLIC_KEY set: verify against that PEM public key.
  - unset (dev/test): an ephemeral EC key pair is generated on import and
    create_access_token() can mint tokens with it.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import jwt
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import load_pem_public_key

from lms.core.config import SETTINGS

ALGORITHM = "ES256"
ACCESS_TOKEN_TTL_MIN = 15

if SETTINGS.jwt_public_key:
    _private_key = None
    _public_key = load_pem_public_key(SETTINGS.jwt_public_key.encode())
else:
    _private_key = ec.generate_private_key(ec.SECP256R1())
    _public_key = _private_key.public_key()


def create_access_token(
    *,
    sub: str,
    role: str,
    ttl: timedelta = timedelta(minutes=ACCESS_TOKEN_TTL_MIN),
) -> str:
    """Mint a token with the ephemeral dev key (dev and tests only)."""
    if _private_key is None:
        raise RuntimeError("tokens are minted by the identity provider in this environment")
    now = datetime.now(UTC)
    payload = {
        "sub": sub,
        "role": role,
        "iss": SETTINGS.jwt_issuer,
        "aud": SETTINGS.jwt_audience,
        "exp": now + ttl,
        "iat": now,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _private_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and claims, return the payload.

    Pins the algorithm to ES256 (no alg:none or alg switching) and checks
    exp, iss and aud.

    Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError on failure.
    """
    return jwt.decode(
        token,
        _public_key,
        algorithms=[ALGORITHM],
        issuer=SETTINGS.jwt_issuer,
        audience=SETTINGS.jwt_audience,
        options={"require": ["sub", "role", "exp", "iat"]},
    )
