"""
mailcomposer command line

Reads a JSON message description and writes the composed message.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from pydantic import ValidationError

from .composer import MailComposer
from .config import settings
from .exceptions import MailComposerError
from .models import MessageDescription
from .resolver import resolve_attachments

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mailcomposer",
        description="Compose a MIME message from a JSON description",
    )
    parser.add_argument("description", help="JSON description file, or - for stdin")
    parser.add_argument("-o", "--output", help="Write the message here instead of stdout")
    parser.add_argument("--keep-bcc", action="store_true", help="Keep the Bcc header")
    parser.add_argument("--escape-smtp", action="store_true", help="Dot-stuff lines for SMTP DATA")
    parser.add_argument("--base-boundary", help="Fixed token for reproducible boundaries")
    parser.add_argument("--envelope", action="store_true", help="Print the envelope as JSON to stderr")
    parser.add_argument(
        "--version", action="version", version=f"{settings.app_name} {settings.app_version}"
    )
    return parser


def load_description(source: str) -> dict:
    if source == "-":
        return json.load(sys.stdin)
    with open(source, "r", encoding="utf-8") as f:
        return json.load(f)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    try:
        description = MessageDescription.model_validate(load_description(args.description))
        if args.base_boundary:
            description = description.model_copy(update={"base_boundary": args.base_boundary})
        description = asyncio.run(resolve_attachments(description))

        composer = MailComposer(
            description, keep_bcc=args.keep_bcc, escape_smtp=args.escape_smtp
        )
        message = composer.build()
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.error("Invalid description %s: %s", args.description, e)
        return 1
    except MailComposerError as e:
        logger.error("Cannot compose message: %s", e)
        return 1

    if args.output:
        with open(args.output, "wb") as f:
            f.write(message)
    else:
        sys.stdout.buffer.write(message)
        sys.stdout.buffer.flush()

    if args.envelope:
        print(json.dumps(composer.envelope.as_dict()), file=sys.stderr)

    logger.info("Wrote message %s", composer.message_id)
    return 0


if __name__ == "__main__":
    sys.exit(main())
