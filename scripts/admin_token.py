"""
Print a short-lived administrator token for the admin endpoints.

    python scripts/admin_token.py alice
    curl -H "Authorization: Bearer $(python scripts/admin_token.py alice)" ...
"""

import argparse
import sys

from dotenv import load_dotenv

load_dotenv()

from onesearch.auth.jwt_utils import JWTConfigurationError, create_admin_jwt  # noqa: E402
from onesearch.config import get_settings  # noqa: E402


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Issue an administrator JWT")
    parser.add_argument("username")
    parser.add_argument("--ttl", type=int, default=None, help="Lifetime in seconds")
    args = parser.parse_args(argv)

    settings = get_settings()
    try:
        token = create_admin_jwt(
            args.username,
            settings.jwt_admin_secret.get_secret_value(),
            ttl_seconds=args.ttl or settings.jwt_ttl_seconds,
            algorithm=settings.jwt_algo,
        )
    except JWTConfigurationError as exc:
        print(exc, file=sys.stderr)
        return 1

    print(token)
    return 0


if __name__ == "__main__":
    sys.exit(main())
