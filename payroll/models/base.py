"""
Response envelopes shared by the payroll endpoints.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

Model = TypeVar("Model", bound=BaseModel)


class ResponseModel(BaseModel, Generic[Model]):
    """Single object wrapped with the HTTP status code."""

    status_code: int = Field(..., description="HTTP status code of the response")
    data: Model


class ListResponseModel(BaseModel, Generic[Model]):
    """Unpaginated list; the registry is small enough to return in one go."""

    status_code: int = Field(..., description="HTTP status code of the response")
    data: list[Model]
    total_count: int = Field(..., ge=0, description="Number of items in data")
