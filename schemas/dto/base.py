"""
Base for request/response DTOs.

The HTTP surface speaks camelCase JSON (``firstName``, ``accessToken``)
while Python code uses snake_case attributes. Inputs are accepted in either
form; outputs are dumped with ``by_alias=True``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_json_dict(self) -> dict:
        """Dump with camelCase keys, omitting unset optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
