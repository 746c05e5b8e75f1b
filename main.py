# main.py
"""CLI entry point for the DraftLoop content generation pipeline."""

from __future__ import annotations

import argparse
import sys

from models import ContentType
from orchestration.cli_runner import run


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate long-form content with research, scoring and revision."
    )
    parser.add_argument("--topic", required=True, help="Subject of the content")
    parser.add_argument(
        "--keyword",
        dest="keywords",
        action="append",
        required=True,
        help="Target keyword; repeat for more, the first is primary",
    )
    parser.add_argument(
        "--type",
        dest="content_type",
        choices=[c.value for c in ContentType],
        default=ContentType.BLOG_POST.value,
    )
    parser.add_argument("--tone", default=None)
    parser.add_argument("--word-count", type=int, default=None)
    parser.add_argument(
        "--competitor-url",
        dest="competitor_urls",
        action="append",
        default=[],
        help="Competitor page to analyze; may be repeated",
    )
    parser.add_argument("--user-id", default=None)
    parser.add_argument(
        "--max-rounds",
        type=int,
        default=None,
        help="Override MAX_REVISION_ROUNDS for this run",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse command-line arguments and start DraftLoop."""
    args = build_parser().parse_args(argv)
    request_data = {
        "topic": args.topic,
        "keywords": args.keywords,
        "content_type": args.content_type,
        "tone": args.tone,
        "word_count": args.word_count,
        "competitor_urls": args.competitor_urls,
        "user_id": args.user_id,
    }
    return run(request_data, max_rounds=args.max_rounds)


if __name__ == "__main__":
    sys.exit(main())
