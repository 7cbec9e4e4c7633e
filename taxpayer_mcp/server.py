"""
HTTP front door for the Taxpayer MCP server.

This module builds the Starlette application that exposes:
- POST /mcp    JSON-RPC 2.0 endpoint (MCP over plain HTTP, one JSON response
               per request, no sessions)
- GET  /       discovery document listing the tools and prompts
- GET  /health liveness probe

Architecture:
    The flow for every POST /mcp request:

    1. Read the body and peek at the JSON-RPC "id" so that even an
       authentication failure can echo it
    2. Extract the bearer token from the Authorization header and verify it
       with the TokenValidator; on failure answer HTTP 401 with a JSON-RPC
       error (-32001 when no credentials were sent, -32002 otherwise)
    3. Bind the verified Identity to a fresh RequestContext
    4. Hand the parsed message and the context to the McpDispatcher
    5. Return its envelope with HTTP 200 (also for JSON-RPC errors), or an
       empty HTTP 200 for notifications

    /health and / are unauthenticated; they expose no taxpayer data.

    Before any of this, RateLimitMiddleware answers HTTP 429 once a client
    address exceeds its fixed-window budget (/health is never counted).

Running the server:
    taxpayer-mcp-server

    or, from a checkout:

    python -m taxpayer_mcp.server

    This starts the server on http://127.0.0.1:8080 (see config.py for the
    MCP_* environment variables).
"""

import datetime
import json
import logging
from typing import Any, Callable

import uvicorn
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from taxpayer_mcp.auth import AuthError, TokenValidator, extract_bearer_token
from taxpayer_mcp.config import Settings
from taxpayer_mcp.config import settings as default_settings
from taxpayer_mcp.context import RequestContext
from taxpayer_mcp.dispatcher import (
    LATEST_PROTOCOL_VERSION,
    SERVER_NAME,
    SERVER_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    McpDispatcher,
    error_response,
)
from taxpayer_mcp.errors import ParseError
from taxpayer_mcp.logging_setup import configure_logging
from taxpayer_mcp.prompts import PROMPTS
from taxpayer_mcp.ratelimit import FixedWindowRateLimiter, RateLimitMiddleware
from taxpayer_mcp.reference import TaxReferenceProvider
from taxpayer_mcp.store import TaxRecordStore, load_store
from taxpayer_mcp.tools import TOOLS

logger = logging.getLogger("taxpayer-mcp")

MCP_ENDPOINT = "/mcp"

# Marker for a body that is not valid JSON.
_UNPARSEABLE = object()


# ---------------------------------------------------------------------------
# Security headers
# ---------------------------------------------------------------------------


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Adds security headers to every response.

    Strict-Transport-Security is only sent when `hsts` is set; local
    development runs over plain HTTP.
    """

    def __init__(self, app, hsts: bool = False, hsts_max_age: int = 31536000):
        super().__init__(app)
        self.hsts = hsts
        self.hsts_max_age = hsts_max_age

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Content-Security-Policy"] = "default-src 'self'"
        if self.hsts:
            response.headers["Strict-Transport-Security"] = (
                f"max-age={self.hsts_max_age}; includeSubDomains"
            )
        return response


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------


def _decode_body(body: bytes) -> Any:
    try:
        return json.loads(body)
    except (ValueError, RecursionError):
        # RecursionError: nesting deeper than the decoder can follow.
        return _UNPARSEABLE


def _peek_request_id(message: Any) -> Any:
    """The JSON-RPC id if the body is an object carrying one, else None."""
    if isinstance(message, dict):
        return message.get("id")
    return None


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    store: TaxRecordStore | None = None,
    reference: TaxReferenceProvider | None = None,
) -> Starlette:
    """
    Build the ASGI application.

    Args:
        settings: Configuration; defaults to the environment-loaded singleton
        store: Tenant data store; defaults to load_store(settings.data_file)
        reference: Tax reference provider; defaults to a fresh provider

    Returns:
        The Starlette app, with the validator and dispatcher on `app.state`
    """
    settings = settings or default_settings
    store = store if store is not None else load_store(settings.data_file)
    reference = reference or TaxReferenceProvider()

    validator = TokenValidator(
        secret=settings.jwt_secret_key,
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
        validate_audience=settings.jwt_validate_audience,
        validate_issuer=settings.jwt_validate_issuer,
        min_secret_length=settings.jwt_min_secret_length,
    )
    dispatcher = McpDispatcher(
        store=store,
        reference=reference,
        repository_timeout=settings.repository_timeout_seconds,
    )

    rate_limiting = []
    if settings.rate_limit_enabled:
        limiter = FixedWindowRateLimiter(
            limit=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
        rate_limiting.append(Middleware(RateLimitMiddleware, limiter=limiter))

    async def discovery(request: Request) -> Response:
        return JSONResponse(
            {
                "status": "ok",
                "name": SERVER_NAME,
                "version": SERVER_VERSION,
                "protocol": "MCP (JSON-RPC 2.0 over HTTP)",
                "protocolVersion": LATEST_PROTOCOL_VERSION,
                "supportedVersions": SUPPORTED_PROTOCOL_VERSIONS,
                "endpoint": MCP_ENDPOINT,
                "authentication": "Bearer JWT (HS256)",
                "tools": list(TOOLS),
                "prompts": list(PROMPTS),
                "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
                "environment": settings.environment,
            }
        )

    async def health_check(request: Request) -> Response:
        """Liveness probe: is the server process alive and responsive?"""
        return JSONResponse({"status": "healthy"})

    async def mcp_endpoint(request: Request) -> Response:
        context = RequestContext(client_ip=_client_ip(request))
        message = _decode_body(await request.body())
        request_id = _peek_request_id(message)

        # Step 1: Authenticate
        try:
            token = extract_bearer_token(request.headers.get("authorization"))
            identity = validator.validate(token)
        except AuthError as e:
            logger.warning(
                "Authentication failed",
                extra={
                    "log_data": {
                        "request_id": context.request_id,
                        "client_ip": context.client_ip,
                        "reason": e.reason.value,
                        "decision": "rejected",
                    }
                },
            )
            return JSONResponse(
                {
                    "jsonrpc": "2.0",
                    "id": request_id,
                    "error": {"code": e.jsonrpc_code, "message": e.client_message},
                },
                status_code=e.status_code,
                headers={"WWW-Authenticate": "Bearer"},
            )

        context.bind(identity)
        logger.info(
            "Authentication successful",
            extra={
                "log_data": {
                    "request_id": context.request_id,
                    "client_ip": context.client_ip,
                    "user_id": identity.user_id,
                    "role": identity.role.value,
                    "decision": "authenticated",
                }
            },
        )

        # Step 2: Dispatch
        if message is _UNPARSEABLE:
            logger.info(
                "Request body is not valid JSON",
                extra={"log_data": {"request_id": context.request_id}},
            )
            return JSONResponse(error_response(None, ParseError("Parse error")))

        response = await dispatcher.dispatch(message, context)
        if response is None:
            return Response(status_code=200)
        return JSONResponse(response)

    app = Starlette(
        routes=[
            Route("/", discovery, methods=["GET"]),
            Route("/health", health_check, methods=["GET"]),
            Route(MCP_ENDPOINT, mcp_endpoint, methods=["POST"]),
        ],
        middleware=[
            Middleware(SecurityHeadersMiddleware, hsts=settings.environment != "development"),
            Middleware(
                CORSMiddleware,
                allow_origins=settings.cors_allowed_origins,
                allow_credentials=settings.cors_allow_credentials,
                allow_methods=["GET", "POST", "OPTIONS"],
                allow_headers=["Authorization", "Content-Type"],
            ),
        ] + rate_limiting,
    )
    app.state.settings = settings
    app.state.validator = validator
    app.state.dispatcher = dispatcher
    return app


# ---------------------------------------------------------------------------
# Server entry point
# ---------------------------------------------------------------------------


def main() -> None:
    configure_logging(default_settings.log_level)
    logger.info(
        "Starting Taxpayer MCP server on %s:%d (environment=%s)",
        default_settings.host,
        default_settings.port,
        default_settings.environment,
    )
    uvicorn.run(
        create_app(default_settings),
        host=default_settings.host,
        port=default_settings.port,
        log_level=default_settings.log_level,
        server_header=False,
    )


if __name__ == "__main__":
    main()
