"""
Auction transactions.

- open_auction: the auction contract and its ledger
- simulation_harness: bidder actors driven block by block
- scenario: YAML scenario loading and replay
"""

from .open_auction import (
    NotificationCode,
    AuctionPhase,
    Notification,
    AuctionConfig,
    AuctionLedger,
    OpenAuction,
    phase_at,
)
from .simulation_harness import Bidder, BidderState, AuctionSimulation
from .scenario import (
    ScenarioError,
    BidderSpec,
    Scenario,
    parse_scenario,
    load_scenario,
    run_scenario,
)

__all__ = [
    # Contract
    "NotificationCode",
    "AuctionPhase",
    "Notification",
    "AuctionConfig",
    "AuctionLedger",
    "OpenAuction",
    "phase_at",
    # Harness
    "Bidder",
    "BidderState",
    "AuctionSimulation",
    # Scenarios
    "ScenarioError",
    "BidderSpec",
    "Scenario",
    "parse_scenario",
    "load_scenario",
    "run_scenario",
]
