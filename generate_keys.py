#!/usr/bin/env python
"""
Generate secure secrets for the .env file.
"""

import secrets


def main() -> None:
    admin_token = secrets.token_urlsafe(32)

    print("\nAdd the following to your .env file:\n")
    print(f"ADMIN_TOKEN={admin_token}")
    print()
    print("Notes:")
    print("  - ADMIN_TOKEN guards every /api/admin endpoint (X-Admin-Token header)")
    print("  - Keep it out of version control")
    print()


if __name__ == "__main__":
    main()
