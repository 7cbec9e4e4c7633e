"""Tests for the per-request identity context (taxpayer_mcp/context.py)."""

import pytest

from taxpayer_mcp.auth import Identity, Role
from taxpayer_mcp.context import RequestContext
from taxpayer_mcp.errors import UnauthenticatedError


class TestRequestContext:
    def test_unbound_context_is_not_authenticated(self):
        context = RequestContext()

        assert not context.is_authenticated

    def test_reading_identity_from_unbound_context_fails(self):
        """Nothing may read a user id before authentication has bound one."""
        context = RequestContext()

        with pytest.raises(UnauthenticatedError, match="User is not authenticated"):
            context.current_user_id()
        with pytest.raises(UnauthenticatedError):
            context.current_role()

    def test_bound_context_exposes_identity(self):
        context = RequestContext(client_ip="10.0.0.7")
        context.bind(Identity(user_id="alice", role=Role.READ_ONLY))

        assert context.is_authenticated
        assert context.current_user_id() == "alice"
        assert context.current_role() is Role.READ_ONLY
        assert context.client_ip == "10.0.0.7"

    def test_context_cannot_be_rebound(self):
        """A request never changes identity halfway through."""
        context = RequestContext.for_identity(Identity(user_id="alice", role=Role.USER))

        with pytest.raises(RuntimeError):
            context.bind(Identity(user_id="mallory", role=Role.ADMIN))
        assert context.current_user_id() == "alice"

    def test_each_context_gets_its_own_request_id(self):
        first, second = RequestContext(), RequestContext()

        assert first.request_id != second.request_id
        assert len(first.request_id) == 8

    def test_contexts_do_not_share_identity(self):
        alice = RequestContext.for_identity(Identity(user_id="alice", role=Role.USER))
        bob = RequestContext.for_identity(Identity(user_id="bob", role=Role.USER))

        assert alice.current_user_id() == "alice"
        assert bob.current_user_id() == "bob"
