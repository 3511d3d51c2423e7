"""Shared pydantic building blocks for API schemas."""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """
    Base schema for everything on the wire.

    JSON field names are camelCase (collectionId, createdAt); snake_case
    names are accepted on input as well.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(ApiModel):
    """Plain acknowledgement returned by actions without a resource body."""

    message: str
