"""
Pydantic models for list requests and responses.

The HTTP layer parses the query string into a ListRequest:

    GET /products?filter=name ct bolt&filter=status_id eq 1&sort_by=-updated_at,name&page=2

    ListRequest(
        filter=["name ct bolt", "status_id eq 1"],
        sort_by="-updated_at,name",
        page=2,
        page_size=25,
    )
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import MaximumPageSizeError, ValidationError


DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 25
DEFAULT_MAXIMUM_PAGE_SIZE = 100


class ListRequest(BaseModel):
    """
    Normalized list parameters.

    filter: repeatable `<path> <operator> <value...>` strings
    sort_by: comma separated `[-]<path>` terms
    q: free text search
    """
    filter: list[str] = Field(default_factory=list)
    sort_by: Optional[str] = None
    q: Optional[str] = None
    page: int = Field(default=DEFAULT_PAGE, ge=1)
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)
    maximum_page_size: int = Field(default=DEFAULT_MAXIMUM_PAGE_SIZE, ge=1)
    params: dict[str, Any] = Field(default_factory=dict)  # raw query, for custom strategies

    @classmethod
    def from_query(
        cls,
        query: Mapping[str, Any],
        *,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        maximum_page_size: int = DEFAULT_MAXIMUM_PAGE_SIZE,
    ) -> ListRequest:
        """
        Build a request from a query mapping.

        Values may be strings or lists of strings (repeated parameters).
        The last occurrence wins for scalar parameters.
        """
        params = {key: value for key, value in query.items()}

        def scalar(name: str) -> Optional[Any]:
            value = params.get(name)
            if isinstance(value, (list, tuple)):
                return value[-1] if value else None
            return value

        filters = params.get("filter", [])
        if isinstance(filters, str):
            filters = [filters]

        try:
            return cls(
                filter=[f for f in filters if f],
                sort_by=scalar("sort_by") or None,
                q=scalar("q") or None,
                page=scalar("page") or DEFAULT_PAGE,
                page_size=scalar("page_size") or default_page_size,
                maximum_page_size=maximum_page_size,
                params=params,
            )
        except PydanticValidationError as e:
            raise ValidationError(_first_error(e)) from e

    @property
    def offset(self) -> int:
        return self.get_page_size() * (self.page - 1)

    def get_page_size(self) -> int:
        """Requested page size, rejected when above the maximum."""
        if self.page_size > self.maximum_page_size:
            raise MaximumPageSizeError(params={
                "page_size": self.page_size,
                "maximum_page_size": self.maximum_page_size,
            })
        return self.page_size

    # --- Raw parameter accessors ---

    def has(self, name: str) -> bool:
        return name in self.params

    def get_array(self, name: str) -> list[str]:
        value = self.params.get(name)
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return list(value)
        return [value]

    def get_string(self, name: str) -> Optional[str]:
        values = self.get_array(name)
        return str(values[-1]) if values else None

    def get_number(self, name: str) -> Optional[float]:
        value = self.get_string(name)
        if value is None:
            return None
        try:
            return float(value)
        except ValueError:
            raise ValidationError(f"Parameter '{name}' should be a number.")


class ListResponse(BaseModel):
    """Body of a list response."""
    data: list[dict[str, Any]]
    count: int


def _first_error(error: PydanticValidationError) -> str:
    details = error.errors()
    if not details:
        return "The provided parameters are invalid."
    first = details[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"Parameter '{location}' is invalid: {first.get('msg')}."
