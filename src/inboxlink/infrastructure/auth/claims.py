"""Unverified JWT payload decoding

Delegated SSO tokens are only inspected for their expiry and identity
claims. Signature verification is the resource server's job.
"""

import jwt
from pydantic import ValidationError

from inboxlink.shared.exceptions import TokenParseError
from inboxlink.validation import JwtClaims


def decode_claims(token: str) -> JwtClaims:
    """Decode the payload segment of a compact JWT

    Args:
        token: ``header.payload.signature`` string

    Returns:
        Validated claims

    Raises:
        TokenParseError: If the token is not a JWT or lacks an ``exp`` claim
    """
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        raise TokenParseError(f"Invalid JWT token: {type(e).__name__}") from e

    try:
        return JwtClaims.model_validate(payload)
    except ValidationError as e:
        raise TokenParseError("JWT payload is missing a valid exp claim") from e
