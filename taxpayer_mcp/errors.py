"""
Error taxonomy for the MCP endpoint.

Every error that can reach a client is an McpError subclass carrying the
JSON-RPC error code it is reported with. The standard codes come from the
`mcp` SDK; the server-defined codes are:

    -32001  authentication required (no Authorization header)
    -32002  invalid authentication token / resource not found
    -32003  rate limit exceeded (sent with HTTP 429)

Authentication failures themselves are raised as auth.AuthError (they are
handled by the HTTP layer before any dispatch happens).
"""

from typing import Any

from mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    ErrorData,
)

AUTHENTICATION_REQUIRED = -32001
INVALID_TOKEN = -32002
RESOURCE_NOT_FOUND = -32002
RATE_LIMITED = -32003


class McpError(Exception):
    """
    Base class for errors reported to the client as a JSON-RPC error object.

    Attributes:
        message: Client-facing description
        data: Optional structured detail for the `error.data` member
    """

    code: int = INTERNAL_ERROR

    def __init__(self, message: str, data: Any = None):
        self.message = message
        self.data = data
        super().__init__(message)

    def to_error(self) -> dict[str, Any]:
        """Render the JSON-RPC `error` member."""
        return ErrorData(code=self.code, message=self.message, data=self.data).model_dump(
            exclude_none=True
        )


# --- Protocol errors (client-caused, malformed envelope or call) ---


class ParseError(McpError):
    code = PARSE_ERROR


class InvalidRequestError(McpError):
    code = INVALID_REQUEST


class MethodNotFoundError(McpError):
    code = METHOD_NOT_FOUND


class InvalidParamsError(McpError):
    """A required parameter is missing or has the wrong JSON type."""

    code = INVALID_PARAMS


# --- Domain errors ---


class InvalidArgumentError(McpError):
    """A well-typed argument is outside its domain (year range, unknown enum name)."""

    code = INVALID_PARAMS


class ResourceNotFoundError(McpError):
    code = RESOURCE_NOT_FOUND


class UnauthenticatedError(McpError):
    """Identity was read from a request context that has none bound."""

    code = AUTHENTICATION_REQUIRED


class RateLimitedError(McpError):
    code = RATE_LIMITED


# --- Server-side failures ---


class InternalError(McpError):
    code = INTERNAL_ERROR


class RepositoryUnavailableError(InternalError):
    """The backing store failed or did not answer in time. Not retried."""
