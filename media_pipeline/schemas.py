"""
Request body models for the JSON endpoints.
"""

from typing import Any, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaError

from media_pipeline.errors import ValidationError

Model = TypeVar('Model', bound=BaseModel)

SearchType = Literal["video", "user", "live"]


class InfoRequest(BaseModel):
    url: Optional[str] = None


class UrlListRequest(BaseModel):
    # Shape is checked by check_url_list so the limits apply before any call
    urls: Any = None


class SearchRequest(BaseModel):
    query: str = Field(min_length=1, max_length=200)
    limit: int = Field(default=15, ge=1, le=20)


class KeywordSearchRequest(BaseModel):
    keyword: str = Field(min_length=1)
    type: SearchType = "video"
    page: int = Field(default=1, ge=1)


class ChatMessageRequest(BaseModel):
    username: str = Field(min_length=1, max_length=50)
    age: int = Field(ge=1, le=120)
    message: str = Field(min_length=1, max_length=500)


def parse_body(model: Type[Model], payload: Any) -> Model:
    """
    Validate a decoded JSON body.

    Raises:
        ValidationError: With the first schema error as message
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    try:
        return model.model_validate(payload)
    except SchemaError as e:
        first = e.errors()[0]
        location = '.'.join(str(part) for part in first.get('loc', ()))
        message = first.get('msg', 'Invalid request')
        raise ValidationError(f"Invalid {location}: {message}" if location else message) from e
