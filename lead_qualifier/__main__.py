#!/usr/bin/env python3
"""
CLI for offline work with flow and content configs.

Usage:
    python -m lead_qualifier lint                       # all flows
    python -m lead_qualifier lint buy sell
    python -m lead_qualifier progress buy location=Halifax budget=500000
    python -m lead_qualifier match advice buy budget=900000 location=Halifax
"""

import argparse
import sys
from typing import Dict, List, Optional

from lead_qualifier.config_loader import ConfigLoadError, ConfigValidationError, FlowLoader, validate_flow
from lead_qualifier.content import rank
from lead_qualifier.dialogue import start_conversation
from lead_qualifier.state_machine import process_extraction


def parse_profile(pairs: List[str]) -> Dict[str, str]:
    """key=value arguments to a profile dict."""
    profile = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected key=value, got {pair!r}")
        profile[key.strip()] = value.strip()
    return profile


def create_parser() -> argparse.ArgumentParser:
    """Create and return the argument parser."""
    parser = argparse.ArgumentParser(
        prog="python -m lead_qualifier",
        description="Lint flows, check progress and preview content matches",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m lead_qualifier lint
  python -m lead_qualifier progress buy location=Halifax
  python -m lead_qualifier match advice buy budget=900000 location=Halifax
        """
    )
    parser.add_argument(
        "--config-dir",
        help="Config directory with flows/ and content/ (default: bundled yaml_config)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    lint = subparsers.add_parser("lint", help="Validate flow files")
    lint.add_argument("flows", nargs="*", metavar="FLOW", help="Flow names (default: all)")

    progress = subparsers.add_parser("progress", help="Progress and state for a profile")
    progress.add_argument("flow", metavar="FLOW")
    progress.add_argument("profile", nargs="*", metavar="KEY=VALUE")

    match = subparsers.add_parser("match", help="Rank content for a profile")
    match.add_argument("catalog", metavar="CATALOG")
    match.add_argument("flow", metavar="FLOW")
    match.add_argument("profile", nargs="*", metavar="KEY=VALUE")
    match.add_argument("--limit", "-l", type=int, default=None, help="Max items")

    return parser


def run_lint(loader: FlowLoader, flows: List[str]) -> int:
    names = flows or loader.available_flows()
    if not names:
        print(f"No flows found in {loader.config_dir}")
        return 1

    failed = 0
    for name in names:
        try:
            config = loader.load_flow(name, validate=False)
        except ConfigLoadError as e:
            print(f"FAIL {name}: {e.reason}")
            failed += 1
            continue

        errors = validate_flow(config)
        if errors:
            failed += 1
            print(f"FAIL {name}")
            for error in errors:
                print(f"  - {error}")
        else:
            print(f"OK   {name} ({len(config.states)} states)")

    return 1 if failed else 0


def run_progress(loader: FlowLoader, flow: str, profile: Dict[str, str]) -> int:
    config = loader.load_flow(flow)
    context = start_conversation(config, profile)
    result = process_extraction(config, context, [])

    print(f"Flow:     {config.id}")
    print(f"State:    {result.new_state_id}")
    if result.skipped_states:
        print(f"Skipped:  {', '.join(result.skipped_states)}")
    print(f"Progress: {result.progress}%")
    print(f"Complete: {'yes' if result.is_complete else 'no'}")
    return 0


def run_match(
    loader: FlowLoader,
    catalog_name: str,
    flow: str,
    profile: Dict[str, str],
    limit: Optional[int]
) -> int:
    catalog = loader.load_catalog(catalog_name)
    results = rank(catalog, profile, flow, limit=limit)

    print(f"{len(results)} of {len(catalog)} items for flow '{flow}'")
    for index, result in enumerate(results, 1):
        print(f"  {index}. [{result.match_score:.2f}] {result.item.id}: {result.item.title}")
        print(f"     {result.reason}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)
    loader = FlowLoader(args.config_dir)

    try:
        if args.command == "lint":
            return run_lint(loader, args.flows)
        if args.command == "progress":
            return run_progress(loader, args.flow, parse_profile(args.profile))
        return run_match(loader, args.catalog, args.flow, parse_profile(args.profile), args.limit)
    except (ConfigLoadError, ConfigValidationError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
