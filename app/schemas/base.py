from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Serializes as camelCase, accepts both camelCase and snake_case input."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True
