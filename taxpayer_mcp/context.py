"""
Per-request identity context.

A RequestContext is created by the HTTP layer for every inbound call, bound
to the Identity returned by the token validator, and handed explicitly to
the dispatcher and from there to the repository. It is the only place the
repository reads a user id from: no tool, resource or prompt accepts a user
id as an argument.
"""

import uuid
from dataclasses import dataclass, field

from taxpayer_mcp.auth import Identity, Role
from taxpayer_mcp.errors import UnauthenticatedError


def _new_request_id() -> str:
    return uuid.uuid4().hex[:8]


@dataclass
class RequestContext:
    """
    Identity and correlation data for one request.

    Attributes:
        request_id: Short id used to correlate log lines of this request
        client_ip: Remote address, for audit logging
        identity: The verified caller; None until bind() is called
    """

    request_id: str = field(default_factory=_new_request_id)
    client_ip: str | None = None
    identity: Identity | None = None

    @classmethod
    def for_identity(cls, identity: Identity, **kwargs) -> "RequestContext":
        context = cls(**kwargs)
        context.bind(identity)
        return context

    def bind(self, identity: Identity) -> None:
        """Attach the verified identity. A context is bound at most once."""
        if self.identity is not None:
            raise RuntimeError("Request context already has an identity bound")
        self.identity = identity

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

    def current_user_id(self) -> str:
        return self._require_identity().user_id

    def current_role(self) -> Role:
        return self._require_identity().role

    def _require_identity(self) -> Identity:
        if self.identity is None:
            raise UnauthenticatedError("User is not authenticated")
        return self.identity
