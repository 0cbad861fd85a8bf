"""Pydantic models for negotiate endpoint responses"""

from pydantic import BaseModel, ConfigDict, Field


class AvailableTransport(BaseModel):
    """Transport advertised by the negotiate endpoint"""

    model_config = ConfigDict(populate_by_name=True)

    transport: str = Field(..., min_length=1)
    transfer_formats: list[str] = Field(
        default_factory=list, alias="transferFormats"
    )


class NegotiateResponse(BaseModel):
    """Negotiate endpoint response

    Both ``url`` and ``accessToken`` must be non-empty strings; anything else
    is treated as a malformed (retryable) response.
    """

    model_config = ConfigDict(populate_by_name=True)

    url: str = Field(..., min_length=1, description="Hub URL to connect to")
    access_token: str = Field(
        ..., min_length=1, alias="accessToken", description="Transport token"
    )
    available_transports: list[AvailableTransport] = Field(
        default_factory=list, alias="availableTransports"
    )
