"""Pydantic validation models for wire responses"""

from .negotiate import AvailableTransport, NegotiateResponse
from .tokens import (
    ClientCredentialsTokenResponse,
    JwtClaims,
    OAuthErrorResponse,
)

__all__ = [
    "AvailableTransport",
    "NegotiateResponse",
    "ClientCredentialsTokenResponse",
    "JwtClaims",
    "OAuthErrorResponse",
]
