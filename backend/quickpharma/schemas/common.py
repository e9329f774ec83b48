from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Request body accepting the web client's camelCase keys as well as snake_case."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
