from __future__ import annotations

import argparse
import logging
import sys
from signal import SIGINT, signal
from typing import TYPE_CHECKING

import httpx
from dotenv import load_dotenv

from featctl.adapters.gitlab import CatalogDecodeError
from featctl.adapters.proposal_store import ProposalStoreError
from featctl.app import build_gitlab_backend, list_pending
from featctl.common.cancellation import CancelToken, OperationCancelledError
from featctl.config import ConfigurationError, configure_logging
from featctl.domain.errors import FeatureBackendError
from featctl.domain.model import Feature

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from featctl.adapters.gitlab import GitLabBackend, ProposalOutcome

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Manage the GitLab feature catalog")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Abort remote work after this many seconds",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_cmd = subparsers.add_parser("list", help="List catalog features")
    list_cmd.add_argument("--limit", type=int, default=0, help="Maximum features to show")

    search = subparsers.add_parser("search", help="Search features by id, name or summary")
    search.add_argument("query", type=str)
    search.add_argument("--limit", type=int, default=20)

    suggest = subparsers.add_parser("suggest", help="Autocomplete feature ids")
    suggest.add_argument("query", type=str)
    suggest.add_argument("--limit", type=int, default=10)

    get = subparsers.add_parser("get", help="Show one feature")
    get.add_argument("feature_id", type=str)

    create = subparsers.add_parser("create", help="Propose a new feature")
    create.add_argument(
        "--id",
        dest="local_id",
        type=str,
        default="",
        help="Local FT-LOCAL-* id to track the proposal under",
    )
    _add_feature_fields(create, name_required=True)

    update = subparsers.add_parser("update", help="Propose changes to a feature")
    update.add_argument("feature_id", type=str)
    _add_feature_fields(update, name_required=False)

    delete = subparsers.add_parser("delete", help="Propose removing a feature")
    delete.add_argument("feature_id", type=str)

    subparsers.add_parser("whoami", help="Show the authenticated GitLab user")
    subparsers.add_parser("pending", help="List merge requests tracked locally")

    return parser.parse_args(list(argv))


def _add_feature_fields(parser: argparse.ArgumentParser, *, name_required: bool) -> None:
    parser.add_argument("--name", type=str, required=name_required, default="")
    parser.add_argument("--summary", type=str, default="")
    parser.add_argument("--owner", type=str, default=None)
    parser.add_argument(
        "--tag",
        dest="tags",
        action="append",
        default=[],
        help="Tag to set (repeatable); replaces existing tags on update",
    )


def _feature_from_args(args: argparse.Namespace, feature_id: str) -> Feature:
    return Feature(
        id=feature_id,
        name=args.name,
        summary=args.summary,
        owner=args.owner,
        tags=list(args.tags),
    )


def _print_feature(feature: Feature) -> None:
    print(f"ID:       {feature.id}")
    print(f"Name:     {feature.name}")
    if feature.summary:
        print(f"Summary:  {feature.summary}")
    if feature.owner:
        print(f"Owner:    {feature.owner}")
    if feature.tags:
        print(f"Tags:     {', '.join(feature.tags)}")
    if feature.created_at:
        print(f"Created:  {feature.created_at.isoformat()}")
    if feature.updated_at:
        print(f"Updated:  {feature.updated_at.isoformat()}")


def _print_outcome(outcome: ProposalOutcome) -> None:
    proposal = outcome.proposal
    print(f"Opened MR !{proposal.proposal_id} for {outcome.feature.id}: {proposal.url}")
    if not outcome.tracked:
        print("Warning: the merge request is not tracked locally", file=sys.stderr)


def _run(
    backend: GitLabBackend, args: argparse.Namespace, cancel: CancelToken
) -> None:
    match args.command:
        case "list":
            features = backend.list_all(cancel=cancel)
            if args.limit > 0:
                features = features[: args.limit]
            for feature in features:
                print(f"{feature.id}\t{feature.name}")
        case "search":
            for feature in backend.search(args.query, args.limit, cancel=cancel):
                print(f"{feature.id}\t{feature.name}\t{feature.summary}")
        case "suggest":
            for item in backend.suggest(args.query, args.limit, cancel=cancel):
                print(f"{item.id}\t{item.name}")
        case "get":
            _print_feature(backend.get_feature(args.feature_id, cancel=cancel))
        case "create":
            feature = _feature_from_args(args, args.local_id)
            _print_outcome(backend.propose_create(feature, cancel=cancel))
        case "update":
            updates = _feature_from_args(args, args.feature_id)
            _print_outcome(backend.propose_update(args.feature_id, updates, cancel=cancel))
        case "delete":
            _print_outcome(backend.propose_delete(args.feature_id, cancel=cancel))
        case "whoami":
            info = backend.get_auth_info(cancel=cancel)
            print(f"{info.username} ({info.display_name}) role={info.role}")
            print(f"Catalog: {backend.instance_id()}")
        case _:
            raise ValueError(f"Unsupported command: {args.command}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.WARNING)
    cancel = CancelToken(timeout=parsed_args.timeout)

    try:
        if parsed_args.command == "pending":
            for proposal in list_pending():
                target = proposal.server_id or proposal.local_id
                print(
                    f"!{proposal.proposal_id}\t{proposal.operation}\t{target}\t{proposal.url}"
                )
            return
        with build_gitlab_backend() as backend:
            _run(backend, parsed_args, cancel)
    except (
        CatalogDecodeError,
        ConfigurationError,
        FeatureBackendError,
        ProposalStoreError,
        OperationCancelledError,
        httpx.HTTPError,
    ) as exc:
        log.debug("Command %s failed", parsed_args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
