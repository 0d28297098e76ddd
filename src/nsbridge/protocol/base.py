"""
Shared pieces of the request/response surface.

Every message crossing the service boundary is a plain mapping of named
fields. Models in this package describe the structured values carried inside
those mappings (location entries, share records) and know how to convert
themselves to and from the wire shape.
"""

from typing import Any, Self

from pydantic import BaseModel, ConfigDict

RESULT_SUCCESS = "isSuccess"
RESULT_VALID_REQUEST = "isValidRequest"


class ProtocolModel(BaseModel):
    """Base for wire models.

    Fields use snake_case in Python and camelCase aliases on the wire. Both
    spellings are accepted when parsing.
    """

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_protocol(cls, data: dict[str, Any]) -> Self:
        """Build the model from a wire mapping."""
        return cls.model_validate(data)

    def to_protocol(self) -> dict[str, Any]:
        """Dump to the wire mapping, dropping unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


def new_result() -> dict[str, Any]:
    """Start a result envelope.

    Both flags start out True. Handlers that need to report an operational
    failure overwrite `isSuccess` explicitly.
    """
    return {RESULT_SUCCESS: True, RESULT_VALID_REQUEST: True}
