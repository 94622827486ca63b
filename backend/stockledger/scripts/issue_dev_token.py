"""
Mint a signed access token for local development.

    python -m stockledger.scripts.issue_dev_token alice@example.com --role admin

Uses the same SECRET_KEY / JWT_ALGORITHM as the API, so the token is only
valid against a server started with the same environment.
"""

import argparse
from datetime import timedelta
from typing import List, Optional

from stockledger.security import ACCESS_TOKEN_EXPIRE_MINUTES, create_access_token


def build_token(email: str, *, role: Optional[str] = None, minutes: Optional[int] = None) -> str:
    claims = {"sub": email, "email": email}
    if role:
        claims["role"] = role
    expires = timedelta(minutes=minutes if minutes is not None else ACCESS_TOKEN_EXPIRE_MINUTES)
    return create_access_token(data=claims, expires_delta=expires)


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Issue a development JWT for the stock ledger API.")
    parser.add_argument("email", help="Identity recorded on ledger transactions.")
    parser.add_argument("--role", default=None, help="Role claim, e.g. 'admin'.")
    parser.add_argument("--minutes", type=int, default=None, help="Lifetime in minutes.")
    args = parser.parse_args(argv)

    print(build_token(args.email.strip(), role=args.role, minutes=args.minutes))


if __name__ == "__main__":
    main()
