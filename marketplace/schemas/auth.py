"""
Authentication schemas.
"""

from typing import Optional

from pydantic import BaseModel, Field


class TokenPayload(BaseModel):
    """Claims read from a verified bearer token."""

    sub: str = Field(..., description="User identifier")
    role: Optional[str] = Field(None, description="User role claim")
