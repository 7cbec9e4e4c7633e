"""
JWT bearer token validation.

This module turns the raw Authorization header of an inbound request into a
verified Identity:

- extract_bearer_token() pulls the token out of "Bearer <token>"
- TokenValidator.validate() verifies the token and extracts the claims

Validation checks, in order:
    1. The header's declared algorithm is in the allow-list (HS256 only;
       "none" and asymmetric algorithms are rejected before any key is used)
    2. The HMAC-SHA256 signature matches the configured secret
    3. "exp" is present and in the future, "nbf" (if present) has passed;
       there is no leeway, timestamps are compared exactly
    4. "aud" and "iss" equal the configured values (each check can be
       switched off in configuration)
    5. "sub" and "role" are present and "role" names a known Role

Token structure (JWT payload):
    {
        "sub": "test-user",
        "role": "User",
        "aud": "taxpayer-mcp-server",
        "iss": "taxpayer-auth-server",
        "iat": 1738800000,
        "nbf": 1738800000,
        "exp": 1738886400
    }

Issuing tokens is not this server's job; scripts/generate_token.py mints
tokens for local development.
"""

import enum
import logging
from dataclasses import dataclass

import jwt

from taxpayer_mcp.errors import AUTHENTICATION_REQUIRED, INVALID_TOKEN

logger = logging.getLogger(__name__)

ALLOWED_ALGORITHMS = ["HS256"]


class Role(enum.Enum):
    ADMIN = "Admin"
    USER = "User"
    READ_ONLY = "ReadOnly"


# Role claims are matched exactly against these names.
ROLES_BY_CLAIM: dict[str, Role] = {role.value: role for role in Role}


@dataclass(frozen=True)
class Identity:
    """
    A verified caller, produced only by TokenValidator.validate().

    Attributes:
        user_id: The "sub" claim; owner id of every tenant record the caller may read
        role: The "role" claim
    """

    user_id: str
    role: Role


class AuthFailure(enum.Enum):
    MISSING_HEADER = "missing_header"
    MALFORMED_TOKEN = "malformed_token"
    INVALID_ALGORITHM = "invalid_algorithm"
    BAD_SIGNATURE = "bad_signature"
    EXPIRED = "expired"
    NOT_YET_VALID = "not_yet_valid"
    INVALID_AUDIENCE = "invalid_audience"
    INVALID_ISSUER = "invalid_issuer"
    MISSING_CLAIMS = "missing_claims"
    INVALID_ROLE = "invalid_role"


class AuthError(Exception):
    """
    Raised when a request cannot be authenticated.

    The detailed reason is kept for server-side logs; clients only see one
    of two JSON-RPC errors: "authentication required" when no credentials
    were sent at all, "invalid authentication token" otherwise.

    Attributes:
        reason: Which check failed
        message: Human-readable description (logged server-side)
        status_code: HTTP status code to return (always 401)
    """

    status_code = 401

    def __init__(self, reason: AuthFailure, message: str):
        self.reason = reason
        self.message = message
        super().__init__(message)

    @property
    def jsonrpc_code(self) -> int:
        if self.reason is AuthFailure.MISSING_HEADER:
            return AUTHENTICATION_REQUIRED
        return INVALID_TOKEN

    @property
    def client_message(self) -> str:
        if self.reason is AuthFailure.MISSING_HEADER:
            return "Authentication required. Include 'Authorization: Bearer <token>' header."
        return "Invalid authentication token"


def extract_bearer_token(authorization_header: str | None) -> str:
    """
    Extract the raw token from an Authorization header value.

    The "Bearer" scheme (RFC 6750) is matched case-insensitively and the
    token is stripped of surrounding whitespace.

    Raises:
        AuthError: MISSING_HEADER if the header is absent or blank,
                   MALFORMED_TOKEN for any other scheme or an empty token
    """
    if authorization_header is None or not authorization_header.strip():
        raise AuthError(AuthFailure.MISSING_HEADER, "Missing Authorization header")

    parts = authorization_header.strip().split(None, 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise AuthError(
            AuthFailure.MALFORMED_TOKEN,
            "Invalid Authorization header format, expected 'Bearer <token>'",
        )

    return parts[1].strip()


class TokenValidator:
    """
    Verifies HS256 bearer tokens against a fixed secret and policy.

    Instances hold only immutable configuration, so one validator is shared
    by all concurrent requests.
    """

    def __init__(
        self,
        secret: str,
        audience: str,
        issuer: str,
        validate_audience: bool = True,
        validate_issuer: bool = True,
        min_secret_length: int = 32,
    ):
        self._secret = secret
        self.audience = audience
        self.issuer = issuer
        self.validate_audience = validate_audience
        self.validate_issuer = validate_issuer

        if len(secret) < min_secret_length:
            logger.warning(
                "JWT secret is shorter than the recommended minimum",
                extra={"log_data": {"secret_length": len(secret), "minimum": min_secret_length}},
            )

        logger.info(
            "Token validator initialised",
            extra={
                "log_data": {
                    "audience": audience,
                    "issuer": issuer,
                    "validate_audience": validate_audience,
                    "validate_issuer": validate_issuer,
                }
            },
        )

    def validate(self, raw_token: str) -> Identity:
        """
        Verify a compact JWT and return the identity it asserts.

        Args:
            raw_token: The token string (three dot-separated segments)

        Returns:
            Identity built from the "sub" and "role" claims

        Raises:
            AuthError: If any check fails; `reason` says which one
        """
        try:
            identity = self._validate(raw_token)
        except AuthError as e:
            logger.warning(
                "Token validation failed",
                extra={"log_data": {"reason": e.reason.value, "detail": e.message}},
            )
            raise

        logger.debug(
            "Token validated",
            extra={"log_data": {"subject": identity.user_id, "role": identity.role.value}},
        )
        return identity

    def _validate(self, raw_token: str) -> Identity:
        try:
            header = jwt.get_unverified_header(raw_token)
        except jwt.InvalidTokenError as e:
            raise AuthError(AuthFailure.MALFORMED_TOKEN, f"Malformed token: {e}")

        algorithm = header.get("alg")
        if algorithm not in ALLOWED_ALGORITHMS:
            raise AuthError(
                AuthFailure.INVALID_ALGORITHM, f"Token algorithm {algorithm!r} is not allowed"
            )

        try:
            payload = jwt.decode(
                raw_token,
                self._secret,
                algorithms=ALLOWED_ALGORITHMS,
                audience=self.audience if self.validate_audience else None,
                issuer=self.issuer if self.validate_issuer else None,
                leeway=0,
                options={
                    "require": ["exp", "sub"],
                    "verify_aud": self.validate_audience,
                },
            )
        except jwt.ExpiredSignatureError:
            raise AuthError(AuthFailure.EXPIRED, "Token has expired")
        except jwt.ImmatureSignatureError:
            raise AuthError(AuthFailure.NOT_YET_VALID, "Token is not yet valid")
        except jwt.InvalidSignatureError:
            raise AuthError(AuthFailure.BAD_SIGNATURE, "Token signature verification failed")
        except jwt.InvalidAlgorithmError as e:
            raise AuthError(AuthFailure.INVALID_ALGORITHM, f"Invalid algorithm: {e}")
        except jwt.InvalidAudienceError:
            raise AuthError(AuthFailure.INVALID_AUDIENCE, "Token audience is not accepted")
        except jwt.InvalidIssuerError:
            raise AuthError(AuthFailure.INVALID_ISSUER, "Token issuer is not accepted")
        except jwt.MissingRequiredClaimError as e:
            if e.claim == "aud":
                raise AuthError(AuthFailure.INVALID_AUDIENCE, "Token has no audience")
            if e.claim == "iss":
                raise AuthError(AuthFailure.INVALID_ISSUER, "Token has no issuer")
            raise AuthError(AuthFailure.MISSING_CLAIMS, f"Token is missing the {e.claim!r} claim")
        except jwt.InvalidTokenError as e:
            raise AuthError(AuthFailure.MALFORMED_TOKEN, f"Invalid token: {e}")

        subject = payload.get("sub")
        role_claim = payload.get("role")

        if not isinstance(subject, str) or not subject or role_claim is None:
            raise AuthError(AuthFailure.MISSING_CLAIMS, "Token must carry 'sub' and 'role' claims")

        role = ROLES_BY_CLAIM.get(role_claim) if isinstance(role_claim, str) else None
        if role is None:
            raise AuthError(AuthFailure.INVALID_ROLE, f"Unknown role {role_claim!r}")

        return Identity(user_id=subject, role=role)
