"""CLI entrypoint for serving the story_timeline HTTP API."""

from __future__ import annotations

import argparse
import os

import uvicorn

from story_timeline.adapters.observability import configure_runtime_logging


def build_arg_parser() -> argparse.ArgumentParser:
    """Create CLI args for the local API server process."""
    parser = argparse.ArgumentParser(description="Serve the story_timeline API.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    parser.add_argument(
        "--db-path",
        default="",
        help="SQLite path for the manuscript project (default: work/local/story_timeline.db).",
    )
    parser.add_argument(
        "--gap-threshold-days",
        type=int,
        default=0,
        help="Override the orphan-gap threshold in days (default: 1095).",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Parse CLI flags and start uvicorn with the app factory path."""
    configure_runtime_logging()
    parser = build_arg_parser()
    parsed = parser.parse_args(argv)
    db_path = str(parsed.db_path).strip()
    if db_path:
        os.environ["STORY_TIMELINE_DB_PATH"] = db_path
    if int(parsed.gap_threshold_days) > 0:
        os.environ["STORY_TIMELINE_GAP_THRESHOLD_DAYS"] = str(int(parsed.gap_threshold_days))
    uvicorn.run(
        "story_timeline.api.app:app",
        host=str(parsed.host),
        port=int(parsed.port),
        reload=bool(parsed.reload),
    )


if __name__ == "__main__":
    main()
