"""
JSON-RPC 2.0 method dispatch for the MCP endpoint.

The dispatcher receives one already-parsed JSON-RPC message together with
the authenticated RequestContext and returns the response envelope:

    {"jsonrpc": "2.0", "id": <echoed>, "result": {...}}
    {"jsonrpc": "2.0", "id": <echoed>, "error": {"code": ..., "message": ...}}

Notifications ("notifications/initialized" and friends) produce no response
at all; dispatch() returns None for them.

Error mapping:
    McpError subclasses     -> their own code and message
    anything else           -> -32603 "Tool execution error: <message>",
                               logged with the traceback

The dispatcher holds no per-request state. A fresh TaxpayerDataRepository
is built for every tool call from the shared store and the caller's context.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from mcp.types import (
    CallToolResult,
    Implementation,
    InitializeResult,
    PromptsCapability,
    ResourcesCapability,
    ServerCapabilities,
    TextContent,
    ToolsCapability,
)

from taxpayer_mcp.context import RequestContext
from taxpayer_mcp.errors import (
    InternalError,
    InvalidParamsError,
    InvalidRequestError,
    McpError,
    MethodNotFoundError,
)
from taxpayer_mcp.prompts import PROMPTS, get_prompt
from taxpayer_mcp.reference import TaxReferenceProvider
from taxpayer_mcp.repository import TaxpayerDataRepository
from taxpayer_mcp.resources import ResourceCatalog
from taxpayer_mcp.store import TaxRecordStore
from taxpayer_mcp.tools import TOOLS

logger = logging.getLogger(__name__)

SERVER_NAME = "taxpayer-mcp-server"
SERVER_VERSION = "1.0.0"

LATEST_PROTOCOL_VERSION = "2025-03-26"
SUPPORTED_PROTOCOL_VERSIONS = ["2024-11-05", "2025-03-26"]

JSONRPC_VERSION = "2.0"

Handler = Callable[[dict[str, Any], RequestContext], Awaitable[dict[str, Any]]]


def success_response(request_id: Any, result: dict[str, Any]) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def error_response(request_id: Any, error: McpError) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error.to_error()}


def _dump(model) -> dict[str, Any]:
    return model.model_dump(by_alias=True, exclude_none=True, mode="json")


class McpDispatcher:
    """
    Routes JSON-RPC methods to the tool, resource and prompt handlers.

    Args:
        store: Shared tenant data store
        reference: Shared tax reference provider
        repository_timeout: Per-call bound on backing-store lookups, in seconds
    """

    def __init__(
        self,
        store: TaxRecordStore,
        reference: TaxReferenceProvider,
        repository_timeout: float = 5.0,
    ):
        self.store = store
        self.reference = reference
        self.resources = ResourceCatalog(reference)
        self.repository_timeout = repository_timeout
        self._methods: dict[str, Handler] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
            "resources/list": self._list_resources,
            "resources/read": self._read_resource,
            "prompts/list": self._list_prompts,
            "prompts/get": self._get_prompt,
        }

    @property
    def methods(self) -> list[str]:
        return list(self._methods)

    def repository_for(self, context: RequestContext) -> TaxpayerDataRepository:
        return TaxpayerDataRepository(self.store, context, timeout=self.repository_timeout)

    async def dispatch(self, message: Any, context: RequestContext) -> dict[str, Any] | None:
        """
        Handle one JSON-RPC message.

        Args:
            message: The decoded request body
            context: The caller's bound request context

        Returns:
            The response envelope, or None for a notification
        """
        request_id = message.get("id") if isinstance(message, dict) else None

        if not isinstance(message, dict):
            return self._protocol_error(request_id, InvalidRequestError("Invalid Request"), context)

        method = message.get("method")
        if not isinstance(method, str) or not method:
            return self._protocol_error(
                request_id, InvalidRequestError("Invalid Request: missing method"), context
            )

        if method.startswith("notifications/"):
            logger.debug(
                "Notification received",
                extra={"log_data": {"request_id": context.request_id, "method": method}},
            )
            return None

        handler = self._methods.get(method)
        if handler is None:
            return self._protocol_error(
                request_id, MethodNotFoundError(f"Method not found: {method}"), context
            )

        params = message.get("params")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            return self._protocol_error(
                request_id, InvalidParamsError("Invalid params: expected an object"), context
            )

        try:
            result = await handler(params, context)
        except InternalError as e:
            logger.error(
                "Request failed",
                extra={"log_data": self._log_fields(context, method, error=e.message)},
            )
            return error_response(request_id, e)
        except McpError as e:
            return self._protocol_error(request_id, e, context, method=method)
        except Exception as e:
            logger.exception(
                "Unhandled error while executing request",
                extra={"log_data": self._log_fields(context, method)},
            )
            return error_response(request_id, InternalError(f"Tool execution error: {e}"))

        return success_response(request_id, result)

    # --- Logging helpers ---

    def _log_fields(self, context: RequestContext, method: str | None, **fields) -> dict[str, Any]:
        data = {
            "request_id": context.request_id,
            "method": method,
            "user_id": context.identity.user_id if context.identity else None,
        }
        data.update(fields)
        return data

    def _protocol_error(
        self,
        request_id: Any,
        error: McpError,
        context: RequestContext,
        method: str | None = None,
    ) -> dict[str, Any]:
        logger.info(
            "Request rejected",
            extra={
                "log_data": self._log_fields(
                    context, method, code=error.code, error=error.message
                )
            },
        )
        return error_response(request_id, error)

    # --- Lifecycle ---

    async def _initialize(self, params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
        requested = params.get("protocolVersion")
        version = requested if requested in SUPPORTED_PROTOCOL_VERSIONS else LATEST_PROTOCOL_VERSION
        result = InitializeResult(
            protocolVersion=version,
            capabilities=ServerCapabilities(
                tools=ToolsCapability(listChanged=False),
                resources=ResourcesCapability(subscribe=False, listChanged=False),
                prompts=PromptsCapability(listChanged=False),
            ),
            serverInfo=Implementation(name=SERVER_NAME, version=SERVER_VERSION),
        )
        logger.info(
            "Session initialised",
            extra={"log_data": self._log_fields(context, "initialize", protocol_version=version)},
        )
        return _dump(result)

    async def _ping(self, params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
        return {}

    # --- Tools ---

    async def _list_tools(self, params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
        return {"tools": [spec.descriptor() for spec in TOOLS.values()]}

    async def _call_tool(self, params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise InvalidParamsError("Missing required parameter: name", data={"argument": "name"})

        spec = TOOLS.get(name)
        if spec is None:
            raise InvalidParamsError(f"Unknown tool: {name}", data={"argument": "name"})

        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise InvalidParamsError("Tool arguments must be an object", data={"argument": "arguments"})

        logger.info(
            "Tool call",
            extra={"log_data": self._log_fields(context, "tools/call", tool=name)},
        )
        text = await spec.handler(self.repository_for(context), arguments)
        result = CallToolResult(content=[TextContent(type="text", text=text)], isError=False)
        return _dump(result)

    # --- Resources ---

    async def _list_resources(self, params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
        return {"resources": self.resources.list_resources()}

    async def _read_resource(self, params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
        uri = params.get("uri")
        if not isinstance(uri, str) or not uri:
            raise InvalidParamsError("Missing required parameter: uri", data={"argument": "uri"})
        logger.info(
            "Resource read",
            extra={"log_data": self._log_fields(context, "resources/read", uri=uri)},
        )
        return self.resources.read_resource(uri)

    # --- Prompts ---

    async def _list_prompts(self, params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
        return {"prompts": [prompt.descriptor() for prompt in PROMPTS.values()]}

    async def _get_prompt(self, params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise InvalidParamsError("Missing required parameter: name", data={"argument": "name"})
        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise InvalidParamsError("Prompt arguments must be an object", data={"argument": "arguments"})
        return get_prompt(name).get(arguments)
