"""Print a bearer token for a calendar owner to stdout.

Usage:
    python -m scheduler.issue_token owner@example.com [minutes]
"""
import sys

from scheduler.auth.jwt_handler import create_access_token


def main(argv: list[str]) -> int:
    if not argv:
        print(__doc__.strip(), file=sys.stderr)
        return 2

    expires_minutes = int(argv[1]) if len(argv) > 1 else None
    print(create_access_token(subject=argv[0].strip().lower(), expires_minutes=expires_minutes))
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
