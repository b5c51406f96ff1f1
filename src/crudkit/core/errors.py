"""
Custom exceptions for the crudkit system.

Every error raised on purpose by crudkit derives from CrudError and carries
what the HTTP layer needs to answer the client:

    status_code  HTTP status (400, 403, 404, 500)
    error        short label ("Bad Request", "Validation Error", ...)
    code         machine readable code (e.g. "VALIDATION_IMMUTABLE_FIELD")
    message      human readable message
    params       extra details used to build the message

Anything else escaping the repository is considered unclassified and gets
wrapped by the data provider into one of the UnableTo* errors.
"""

from __future__ import annotations

from typing import Any, Optional


class CrudError(Exception):
    """Base exception for all crudkit errors."""

    status_code: int = 500
    error: str = "Internal Server Error"
    code: str = "INTERNAL_SERVER_ERROR"
    message: str = "The service could not process this request."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        params: Optional[dict[str, Any]] = None,
        internal_error: Optional[BaseException] = None,
    ):
        self.params = params or {}
        self.internal_error = internal_error
        self.message = message or self.build_message(self.params)
        super().__init__(self.message)

    def build_message(self, params: dict[str, Any]) -> str:
        """Build the default message from params. Overridden by parametrized errors."""
        return type(self).message

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.status_code, "error": self.error, "message": self.message}


# =============================================================================
# Families
# =============================================================================


class BadRequestError(CrudError):
    status_code = 400
    error = "Bad Request"
    code = "BAD_REQUEST"
    message = "The request is invalid."


class ValidationError(BadRequestError):
    error = "Validation Error"
    code = "VALIDATION_ERROR"
    message = "The provided input is invalid."


class ForbiddenError(CrudError):
    status_code = 403
    error = "No permissions"
    code = "FORBIDDEN"
    message = "You do not have enough permissions to perform this request."


class NotFoundError(CrudError):
    status_code = 404
    error = "Not found"
    code = "NOT_FOUND"
    message = "The item does not exist or you do not have access."


class InternalServerError(CrudError):
    """Configuration bugs and broken invariants, never caused by user input."""


# =============================================================================
# Request parameters
# =============================================================================


class InvalidPathError(BadRequestError):
    """A dotted path does not resolve to associations + attribute."""
    code = "INVALID_PATH"
    message = "Provided path is invalid."


class InvalidFilterParameterError(InvalidPathError):
    code = "INVALID_FILTER_PARAMETER"
    message = "Provided value for 'filter' parameter is invalid."


class InvalidSortByError(InvalidPathError):
    code = "INVALID_SORT_BY_OPERATOR"
    message = "Provided 'sort_by' parameter is invalid."


class InvalidOperatorError(BadRequestError):
    code = "INVALID_FILTER_OPERATOR"

    def build_message(self, params: dict[str, Any]) -> str:
        return f"Provided filter operator '{params.get('operator')}' is invalid."


class InvalidIsOperatorError(BadRequestError):
    code = "INVALID_IS_OPERATOR"
    message = "Provided filter operator 'is' can only have 'null' or 'empty' value."


class InvalidDateTimeFormatError(BadRequestError):
    code = "INVALID_FORMAT_DATE_TIME"

    def build_message(self, params: dict[str, Any]) -> str:
        return (
            f"Provided '{params.get('field')}' property should be in ISO format: "
            "YYYY-MM-DDTHH:MM:SSZ."
        )


class InvalidUpdatedSinceFieldError(BadRequestError):
    code = "INVALID_UPDATED_SINCE_FIELD"

    def build_message(self, params: dict[str, Any]) -> str:
        return (
            "The asked entity (or its relations) do not contain any timestamp fields. "
            f"'{params.get('field')}' filter is therefore invalid."
        )


class MaximumPageSizeError(ValidationError):
    code = "VALIDATION_MAXIMUM_PAGE_SIZE"

    def build_message(self, params: dict[str, Any]) -> str:
        return (
            f"The selected page size '{params.get('page_size')}' exceeds the maximum "
            f"page size of '{params.get('maximum_page_size')}'."
        )


# =============================================================================
# Input validation
# =============================================================================


class ImmutableFieldError(ValidationError):
    code = "VALIDATION_IMMUTABLE_FIELD"

    def build_message(self, params: dict[str, Any]) -> str:
        return f"Field '{params.get('field')}' cannot be updated."


class InvalidRelationError(ValidationError):
    code = "VALIDATION_INVALID_RELATION"

    def build_message(self, params: dict[str, Any]) -> str:
        return f"Provided id for field '{params.get('field')}' is invalid."


# =============================================================================
# Permissions / visibility
# =============================================================================


class NoAccessError(ForbiddenError):
    """Create-time ownership check failed. Names the offending key and value."""
    code = "NO_ACCESS"

    def build_message(self, params: dict[str, Any]) -> str:
        return f"You do not have access to {params.get('key')} '{params.get('value')}'."


class NoPermissionsError(ForbiddenError):
    """Update/delete ownership check failed. Deliberately generic."""
    code = "NO_PERMISSIONS"


class ItemNotFoundError(NotFoundError):
    code = "ITEM_NOT_FOUND"


# =============================================================================
# Server side (configuration) errors
# =============================================================================


class InvalidPermissionDefinitionError(InternalServerError):
    code = "INVALID_PERMISSION_DEFINITION"


class InvalidHierarchyError(InternalServerError):
    code = "INVALID_UPDATED_AT_HIERARCHY"

    def build_message(self, params: dict[str, Any]) -> str:
        return (
            f"No association could be found for the source model ({params.get('source')}) "
            f"to the target model ({params.get('target')}). "
            "Check the timestamp hierarchy of the entity configuration."
        )


class EntityToUpdateNotFoundError(InternalServerError):
    code = "ENTITY_TO_UPDATE_NOT_FOUND"

    def build_message(self, params: dict[str, Any]) -> str:
        return f"Unable to find entity to update: {params.get('id')}"


class MaximumDepthExceededError(InternalServerError):
    code = "MAXIMUM_DEPTH_EXCEEDED"

    def build_message(self, params: dict[str, Any]) -> str:
        return (
            f"Nested input for {params.get('entity')} exceeds the maximum depth of "
            f"{params.get('max_depth')}. Check the association graph for cycles."
        )


class AlreadyInitializedError(InternalServerError):
    code = "ALREADY_INITIALIZED"
    message = "Database was already initialized."


class DatabaseNotInitializedError(InternalServerError):
    code = "NOT_INITIALIZED"
    message = "Database is not initialized. Call init_database() first."


# =============================================================================
# Provider level wrappers
# =============================================================================


class UnableToListError(BadRequestError):
    code = "UNABLE_TO_LIST"
    message = "Items could not be listed."


class UnableToGetError(BadRequestError):
    code = "UNABLE_TO_GET"
    message = "Item could not be retrieved."


class UnableToCreateError(BadRequestError):
    code = "UNABLE_TO_CREATE"
    message = "Item could not be created."


class UnableToUpdateError(BadRequestError):
    code = "UNABLE_TO_UPDATE"
    message = "Item could not be updated."


class UnableToDeleteError(BadRequestError):
    code = "UNABLE_TO_DELETE"
    message = "Item could not be deleted."
