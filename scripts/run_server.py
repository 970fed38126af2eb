from __future__ import annotations

import argparse

import uvicorn

from govassess.infrastructure.config import get_settings, load_settings_from_file


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Serve the governance assessment API")
    parser.add_argument(
        "--config",
        help="JSON settings file with app/database/logging/server sections",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    settings = load_settings_from_file(args.config) if args.config else get_settings()

    server = settings.server
    uvicorn.run(
        "govassess.web.main:app",
        host=server.host,
        port=server.port,
        reload=server.reload,
    )


if __name__ == "__main__":
    main()
