from __future__ import annotations

import argparse
import logging
import sys
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from termrequester.app import get_term, request_term, search_terms, sync_terms
from termrequester.config import configure_logging
from termrequester.domain.model import classify_id
from termrequester.errors import DataLossError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from termrequester.domain.model import TermEntity

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Request and track vocabulary terms")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    request = subparsers.add_parser("request", help="Request a new term")
    request.add_argument("name", type=str, help="Primary label of the term")
    request.add_argument(
        "--synonym",
        dest="synonyms",
        action="append",
        default=[],
        help="Alternate label (repeatable)",
    )
    request.add_argument(
        "--parent",
        dest="parents",
        action="append",
        default=[],
        help="Identifier of a broader term (repeatable)",
    )
    request.add_argument("--description", type=str, default="", help="Free-text definition")

    get = subparsers.add_parser("get", help="Show a term, refreshed from its ticket")
    get.add_argument("term_id", type=str, help="Local (TEMPHPO_nnnnnn) or authority id")

    search = subparsers.add_parser("search", help="Search stored terms")
    search.add_argument("text", type=str, help="Text to look for in labels and descriptions")

    subparsers.add_parser("sync", help="Refresh all submitted terms from the tracker")

    return parser.parse_args(list(argv))


def _validate(args: argparse.Namespace) -> None:
    if args.command == "request" and not args.name.strip():
        raise ValueError("Term name must not be blank")
    if args.command == "get":
        classify_id(args.term_id.strip())
    if args.command == "search" and not args.text.strip():
        raise ValueError("Search text must not be blank")


def _print_term(term: TermEntity) -> None:
    print(term.describe())  # noqa: T201
    if term.synonyms:
        print(f"  synonyms: {', '.join(sorted(term.synonyms))}")  # noqa: T201
    if term.parent_ids:
        print(f"  parents: {', '.join(sorted(term.parent_ids))}")  # noqa: T201
    if term.description:
        print(f"  description: {term.description}")  # noqa: T201


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    configure_logging()
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args: argparse.Namespace
    try:
        parsed_args = _parse_args(args_list)
        _validate(parsed_args)
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)

    if parsed_args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        if parsed_args.command == "request":
            result = request_term(
                name=parsed_args.name,
                synonyms=parsed_args.synonyms,
                parents=parsed_args.parents,
                description=parsed_args.description,
            )
            _print_term(result.term)
        elif parsed_args.command == "get":
            term = get_term(parsed_args.term_id.strip())
            if term is None:
                log.error("No term with id %s", parsed_args.term_id)
                sys.exit(1)
            _print_term(term)
        elif parsed_args.command == "search":
            for term in search_terms(parsed_args.text):
                _print_term(term)
        elif parsed_args.command == "sync":
            summary = sync_terms()
            print(  # noqa: T201
                f"checked={summary.checked} changed={summary.changed} merged={summary.merged}"
            )
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except DataLossError as exc:
        log.critical("Tracker and store disagree about ticket %s: %s", exc.ticket_id, exc)
        sys.exit(1)
    except Exception:
        log.exception("Fatal error")
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    """Console script entry point."""
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
