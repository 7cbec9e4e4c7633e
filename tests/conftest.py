"""
Shared test fixtures for the Taxpayer MCP server test suite.

Key fixtures:
- make_token: A factory function to generate JWT tokens with any claims
- make_auth_header: The same, wrapped as "Bearer <token>"
- settings / validator: Configuration and a TokenValidator using the test secret
- store / reference: The sample tenant data and a fresh tax reference provider
- repository_for: Builds a TaxpayerDataRepository bound to a given user
- app / client: The Starlette app and an httpx.AsyncClient wired to it
- rpc: Sends one JSON-RPC request to /mcp and returns the HTTP response

Testing approach:
- test_auth.py, test_context.py: the authentication pipeline in isolation
- test_repository.py, test_reference.py, test_resources.py, test_prompts.py,
  test_tools.py: each component called directly
- test_dispatcher.py: JSON-RPC routing and error mapping without HTTP
- test_server.py: end-to-end HTTP requests against the ASGI app (in-memory,
  no network needed)
"""

import datetime

import httpx
import jwt
import pytest

from taxpayer_mcp.auth import Identity, Role, TokenValidator
from taxpayer_mcp.config import Settings
from taxpayer_mcp.context import RequestContext
from taxpayer_mcp.reference import TaxReferenceProvider
from taxpayer_mcp.repository import TaxpayerDataRepository
from taxpayer_mcp.server import create_app
from taxpayer_mcp.store import InMemoryTaxRecordStore

# ---------------------------------------------------------------------------
# Known test configuration
# ---------------------------------------------------------------------------
TEST_SECRET = "test-secret-key-with-at-least-32-characters"
TEST_AUDIENCE = "taxpayer-mcp-server"
TEST_ISSUER = "taxpayer-auth-server"
TEST_ALGORITHM = "HS256"

# A date inside the sample data's range, so year bounds are predictable.
TODAY = datetime.date(2025, 6, 1)


# ---------------------------------------------------------------------------
# Token factory fixture
# ---------------------------------------------------------------------------
@pytest.fixture
def make_token():
    """
    Factory fixture to generate JWT tokens for testing.

    Usage in tests:
        def test_something(make_token):
            token = make_token(sub="alice", role="ReadOnly")
            # token is a raw JWT string (not "Bearer ..." prefixed)
    """

    def _make_token(
        sub: str = "test-user",
        role: str | None = "User",
        audience: str | None = TEST_AUDIENCE,
        issuer: str | None = TEST_ISSUER,
        secret: str = TEST_SECRET,
        algorithm: str = TEST_ALGORITHM,
        exp_hours: float = 1.0,
        nbf_hours: float | None = None,
        extra_claims: dict | None = None,
        include_exp: bool = True,
        include_sub: bool = True,
    ) -> str:
        """
        Generate a signed JWT token with the given claims.

        Args:
            sub: Subject claim (whose records the token unlocks)
            role: Role claim (None means omit the claim entirely)
            audience: "aud" claim (None means omit)
            issuer: "iss" claim (None means omit)
            secret: Signing key
            algorithm: JWT algorithm
            exp_hours: Hours until expiration (negative = already expired)
            nbf_hours: Hours until the token becomes valid (None means omit)
            extra_claims: Additional claims to include in the payload
            include_exp: Whether to include the exp claim
            include_sub: Whether to include the sub claim
        """
        now = datetime.datetime.now(datetime.timezone.utc)
        payload: dict = {"iat": now}

        if include_sub:
            payload["sub"] = sub
        if role is not None:
            payload["role"] = role
        if audience is not None:
            payload["aud"] = audience
        if issuer is not None:
            payload["iss"] = issuer
        if include_exp:
            payload["exp"] = now + datetime.timedelta(hours=exp_hours)
        if nbf_hours is not None:
            payload["nbf"] = now + datetime.timedelta(hours=nbf_hours)
        if extra_claims:
            payload.update(extra_claims)

        return jwt.encode(payload, secret, algorithm=algorithm)

    return _make_token


@pytest.fixture
def make_auth_header(make_token):
    """Convenience fixture that returns a full "Bearer <token>" string."""

    def _make_auth_header(**kwargs) -> str:
        return f"Bearer {make_token(**kwargs)}"

    return _make_auth_header


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------
@pytest.fixture
def settings():
    return Settings(
        jwt_secret_key=TEST_SECRET,
        jwt_audience=TEST_AUDIENCE,
        jwt_issuer=TEST_ISSUER,
        jwt_validate_audience=True,
        jwt_validate_issuer=True,
        environment="development",
        data_file=None,
        repository_timeout_seconds=1.0,
    )


@pytest.fixture
def validator():
    return TokenValidator(secret=TEST_SECRET, audience=TEST_AUDIENCE, issuer=TEST_ISSUER)


@pytest.fixture
def store():
    return InMemoryTaxRecordStore.with_sample_data()


@pytest.fixture
def reference():
    return TaxReferenceProvider()


@pytest.fixture
def repository_for(store):
    """Factory: a repository over the sample store bound to `user_id`."""

    def _repository_for(user_id: str = "test-user", role: Role = Role.USER, store=store):
        context = RequestContext.for_identity(Identity(user_id=user_id, role=role))
        return TaxpayerDataRepository(store, context, timeout=1.0, clock=lambda: TODAY)

    return _repository_for


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def app(settings, store, reference):
    return create_app(settings=settings, store=store, reference=reference)


@pytest.fixture
async def client(app):
    """An httpx.AsyncClient that sends requests straight to the ASGI app."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
def rpc(client, make_auth_header):
    """
    Send one JSON-RPC request to /mcp as `sub` (pass auth=None for no header).

    Usage in tests:
        response = await rpc("tools/call", {"name": "GetTaxReturns"}, sub="another-user")
    """

    async def _rpc(
        method: str,
        params: dict | None = None,
        request_id=1,
        sub: str = "test-user",
        auth: str | None = "default",
    ) -> httpx.Response:
        message = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            message["params"] = params
        headers = {}
        if auth == "default":
            headers["Authorization"] = make_auth_header(sub=sub)
        elif auth is not None:
            headers["Authorization"] = auth
        return await client.post("/mcp", json=message, headers=headers)

    return _rpc
