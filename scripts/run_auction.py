#!/usr/bin/env python3
"""
Replay an auction scenario and report the outcome.

Usage:
    python run_auction.py scenarios/reference.yaml
    python run_auction.py scenarios/reference.yaml --dump-ledger
    python run_auction.py scenarios/reference.yaml --verbose
"""

import argparse
import logging
import sys
from pathlib import Path

import yaml

# Add repository root to path so the package imports without installation
sys.path.insert(0, str(Path(__file__).parent.parent))

from auction_sim.chain import TransferFault
from auction_sim.transactions import ScenarioError, load_scenario, run_scenario


def format_summary(summary: dict) -> str:
    """Render a run summary as human-readable lines."""
    lines = []
    for note in summary["notifications"]:
        subject = note["address"] or "-"
        lines.append(f"  [{note['height']:>6}] {note['code']:<20} {subject} {note['amount']}")

    lines.append("")
    lines.append(f"Height:        {summary['height']}")
    lines.append(f"Ended:         {summary['ended']}")
    lines.append(f"Highest bid:   {summary['highest_bid']} by {summary['highest_bidder'] or 'nobody'}")
    lines.append(f"Beneficiary:   {summary['beneficiary_balance']}")
    lines.append(f"Escrowed:      {summary['contract_balance']}")

    for name, bidder in summary["bidders"].items():
        owed = summary["pending_returns"].get(name, 0)
        lines.append(f"  {name:<12} {bidder['state']:<9} balance={bidder['balance']} owed={owed}")

    return "\n".join(lines)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Replay an auction scenario file"
    )
    parser.add_argument("scenario", type=Path, help="Scenario YAML file")
    parser.add_argument(
        "--dump-ledger",
        action="store_true",
        help="Print the auction parameters and persisted ledger as YAML",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log every auction call",
    )

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    if not args.scenario.exists():
        print(f"Scenario not found: {args.scenario}", file=sys.stderr)
        return 1

    try:
        scenario = load_scenario(args.scenario)
        summary = run_scenario(scenario)
    except (ScenarioError, TransferFault) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Scenario: {args.scenario.name}")
    print(format_summary(summary))

    if args.dump_ledger:
        print()
        print(yaml.safe_dump(summary["auction"], sort_keys=True), end="")

    return 0


if __name__ == "__main__":
    sys.exit(main())
