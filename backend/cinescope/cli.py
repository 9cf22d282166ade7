"""
Maintenance commands.

Usage:
  cd backend
  python -m cinescope.cli create-admin alice@example.com
  python -m cinescope.cli create-treasure-lists
  python -m cinescope.cli migrate-favorites
"""
import argparse
import logging
import sys
from collections.abc import Sequence

from sqlalchemy.orm import Session

from cinescope.core.logging import configure_logging
from cinescope.db.session import SessionLocal
from cinescope.services.auth_service import UserNotFoundError, promote_admin
from cinescope.services.movie_list_service import create_treasure_lists, migrate_favorites

logger = logging.getLogger(__name__)


def cmd_create_admin(db: Session, args: argparse.Namespace) -> int:
    try:
        promoted = promote_admin(db, args.email)
    except UserNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    if promoted:
        print(f"{args.email} is now an admin.")
    else:
        print(f"{args.email} already is an admin.")
    return 0


def cmd_create_treasure_lists(db: Session, args: argparse.Namespace) -> int:
    count = create_treasure_lists(db)
    print(f"{count} treasure list(s) created.")
    return 0


def cmd_migrate_favorites(db: Session, args: argparse.Namespace) -> int:
    count = migrate_favorites(db)
    print(f"{count} favourites list(s) migrated.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cinescope", description="CineScope maintenance commands")
    subparsers = parser.add_subparsers(dest="command", required=True)

    admin = subparsers.add_parser("create-admin", help="Grant admin rights to an existing account")
    admin.add_argument("email")
    admin.set_defaults(handler=cmd_create_admin)

    treasure = subparsers.add_parser("create-treasure-lists", help='Give every user a "La Carte aux Trésors" list')
    treasure.set_defaults(handler=cmd_create_treasure_lists)

    favorites = subparsers.add_parser("migrate-favorites", help='Rename legacy "Favoris" lists to "Mon Panthéon"')
    favorites.set_defaults(handler=cmd_migrate_favorites)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()
    db = SessionLocal()
    try:
        return args.handler(db, args)
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
