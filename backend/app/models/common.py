"""
backend/app/models/common.py

Purpose:
    Shared Pydantic V2 model helpers. Client payloads and responses use
    camelCase keys (``eventId``, ``sportKey``) while Python code uses
    snake_case attributes.

Dependencies:
    - pydantic
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model accepting both camelCase and snake_case input keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_json_dict(self) -> dict:
        """Serialize for the wire: camelCase keys, JSON-safe values."""
        return self.model_dump(mode="json", by_alias=True)
