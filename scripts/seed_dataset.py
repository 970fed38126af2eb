from __future__ import annotations

import argparse
import os

from govassess.infrastructure.config import DatabaseConfig
from govassess.infrastructure.db import (
    create_database_engine,
    create_session_factory,
    initialise_database,
)
from govassess.infrastructure.uow import UnitOfWork
from govassess.utils.seed import seed_default_template, seed_demo_assessments


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Create the governance assessment tables and seed the default template"
    )
    parser.add_argument("--sqlite-path", default=os.environ.get("DB_SQLITE_PATH", "./governance.db"))
    parser.add_argument("--url", default=os.environ.get("DB_URL"), help="SQLAlchemy URL")
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Also add sample departments and assessments",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    cfg = DatabaseConfig(sqlite_path=args.sqlite_path, url=args.url)
    engine = create_database_engine(cfg)
    initialise_database(engine)

    with UnitOfWork(create_session_factory(engine)).begin() as session:
        created = seed_default_template(session)
        inserted = seed_demo_assessments(session) if args.demo else 0

    print(f"Seed completed. Template created: {created}. Demo assessments: {inserted}.")


if __name__ == "__main__":
    main()
