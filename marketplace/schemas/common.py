"""
Shared schema configuration.

All API payloads use camelCase field names on the wire while the Python side
keeps snake_case attributes.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema with camelCase aliases; snake_case names are accepted too."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        str_strip_whitespace=True,
    )


class MessageResponse(CamelModel):
    """Plain acknowledgement body."""

    message: str
