"""
Storefront API - Request Schema Base
=====================================
Request bodies accept camelCase (frontend) or snake_case keys and reject
unknown keys. Route modules declare their own schemas on top of ApiModel.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        str_strip_whitespace=True,
    )

    def changes(self) -> dict:
        """Fields explicitly sent by the client, keyed by attribute name."""
        return self.model_dump(exclude_unset=True)
