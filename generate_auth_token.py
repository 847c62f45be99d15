#!/usr/bin/env python3
"""
Generate Auth Key / Development Token

Without arguments, prints a new AUTH_SECRET_KEY. With an email, issues a
bearer token for that user signed with the AUTH_SECRET_KEY from the
environment (or .env).

Usage:
    python generate_auth_token.py
    python generate_auth_token.py player@example.com --name "Player One"
"""

import argparse

from auth import Identity, generate_key, issue_identity_token
from config import get_settings


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate an auth key or a development bearer token")
    parser.add_argument("email", nargs="?", help="Issue a token for this email")
    parser.add_argument("--name", default=None, help="Display name stored in the token")
    args = parser.parse_args()

    if not args.email:
        key = generate_key()
        print("=" * 80)
        print("AUTH SECRET KEY")
        print("=" * 80)
        print()
        print("Add this key to your .env file:")
        print(f"AUTH_SECRET_KEY={key}")
        print()
        print("Keep this key SECRET: anyone holding it can mint identity tokens.")
        print("=" * 80)
        return

    token = issue_identity_token(Identity(email=args.email, name=args.name), get_settings().auth_secret_key)
    print(token)


if __name__ == "__main__":
    main()
