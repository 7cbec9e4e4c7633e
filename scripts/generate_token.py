"""
CLI utility to generate JWT tokens for testing the Taxpayer MCP server.

In a real deployment, tokens are issued by an identity provider or an
internal token service. For local development this script acts as the
"auth server": it mints HS256 tokens carrying the claims the MCP server
validates (sub, role, aud, iss, iat, nbf, exp).

Usage examples:

    # Token for the sample taxpayer John Doe
    python -m scripts.generate_token --sub test-user

    # Token for the second sample taxpayer, read-only role
    python -m scripts.generate_token --sub another-user --role ReadOnly

    # Token with custom expiration (2 hours)
    python -m scripts.generate_token --sub test-user --exp-hours 2

    # Token with custom secret (must match MCP_JWT_SECRET_KEY on the server)
    python -m scripts.generate_token --sub test-user --secret my-prod-secret-of-32-characters

    # Expired token (for testing rejection)
    python -m scripts.generate_token --sub test-user --exp-hours -1

The generated token can be used with curl:

    curl -X POST http://localhost:8080/mcp \\
      -H "Content-Type: application/json" \\
      -H "Authorization: Bearer <token>" \\
      -d '{"jsonrpc":"2.0","id":1,"method":"tools/list"}'
"""

import argparse
import datetime

import jwt

from taxpayer_mcp.auth import ROLES_BY_CLAIM
from taxpayer_mcp.config import settings


def generate_token(
    subject: str,
    role: str,
    secret: str,
    audience: str | None = None,
    issuer: str | None = None,
    algorithm: str = "HS256",
    exp_hours: float = 8.0,
    nbf_minutes: float = 0.0,
) -> str:
    """
    Generate a signed JWT token with the given claims.

    Args:
        subject: The "sub" claim, the user id whose records the token unlocks
        role: The "role" claim (Admin, User or ReadOnly)
        secret: The signing key (must match the server's MCP_JWT_SECRET_KEY)
        audience: The "aud" claim; omitted when None
        issuer: The "iss" claim; omitted when None
        algorithm: JWT signing algorithm (default: HS256)
        exp_hours: Hours until expiration (negative = already expired)
        nbf_minutes: Minutes until the token becomes valid (0 = immediately)

    Returns:
        The encoded JWT token string
    """
    now = datetime.datetime.now(datetime.timezone.utc)

    payload = {
        "sub": subject,
        "role": role,
        "iat": now,
        "nbf": now + datetime.timedelta(minutes=nbf_minutes),
        "exp": now + datetime.timedelta(hours=exp_hours),
    }
    if audience is not None:
        payload["aud"] = audience
    if issuer is not None:
        payload["iss"] = issuer

    return jwt.encode(payload, secret, algorithm=algorithm)


def curl_example(token: str, host: str = "localhost", port: int = 8080) -> str:
    return (
        f"  curl -X POST http://{host}:{port}/mcp \\\n"
        '    -H "Content-Type: application/json" \\\n'
        f'    -H "Authorization: Bearer {token}" \\\n'
        "    -d '{\"jsonrpc\":\"2.0\",\"id\":1,\"method\":\"tools/call\","
        "\"params\":{\"name\":\"GetTaxpayerProfile\",\"arguments\":{}}}'"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate JWT tokens for the Taxpayer MCP server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Sample taxpayer:
    %(prog)s --sub test-user

  Read-only token for the second sample taxpayer:
    %(prog)s --sub another-user --role ReadOnly

  Expired token (for testing):
    %(prog)s --sub test-user --exp-hours -1

  Custom secret:
    %(prog)s --sub test-user --secret my-secret-of-at-least-32-characters
        """,
    )

    parser.add_argument(
        "--sub",
        required=True,
        help="Subject claim: the user id whose tax records the token unlocks",
    )
    parser.add_argument(
        "--role",
        default="User",
        choices=sorted(ROLES_BY_CLAIM),
        help="Role claim (default: User)",
    )
    parser.add_argument(
        "--audience",
        default=settings.jwt_audience,
        help=f"Audience claim (default: {settings.jwt_audience})",
    )
    parser.add_argument(
        "--issuer",
        default=settings.jwt_issuer,
        help=f"Issuer claim (default: {settings.jwt_issuer})",
    )
    parser.add_argument(
        "--secret",
        default=settings.jwt_secret_key,
        help="JWT signing secret (must match server's MCP_JWT_SECRET_KEY)",
    )
    parser.add_argument(
        "--exp-hours",
        type=float,
        default=8.0,
        help="Hours until token expires (negative = already expired, default: 8)",
    )
    parser.add_argument(
        "--nbf-minutes",
        type=float,
        default=0.0,
        help="Minutes until the token becomes valid (default: 0)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    token = generate_token(
        subject=args.sub,
        role=args.role,
        secret=args.secret,
        audience=args.audience,
        issuer=args.issuer,
        exp_hours=args.exp_hours,
        nbf_minutes=args.nbf_minutes,
    )

    exp_time = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(
        hours=args.exp_hours
    )

    print(f"Subject:    {args.sub}")
    print(f"Role:       {args.role}")
    print(f"Audience:   {args.audience}")
    print(f"Issuer:     {args.issuer}")
    print(f"Expires:    {exp_time.isoformat()}")
    print()
    print(f"Token: {token}")

    print()
    print("Usage with curl (fetch the taxpayer profile):")
    print(curl_example(token, settings.host, settings.port))


if __name__ == "__main__":
    main()
