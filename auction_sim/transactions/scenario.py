"""
Auction scenarios loaded from YAML.

Example:

    auction:
      start_height: 100
      duration: 50
      beneficiary: beneficiary
    bidders:
      alice:
        funds: 100
        bids: {120: 10}
      bob:
        funds: 100
        bids: {130: 20}
        auto_withdraw: false
    finalize_at: 151
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Any

import yaml

from ..chain.primitives import Chain, generate_address
from .open_auction import AuctionConfig
from .simulation_harness import AuctionSimulation


class ScenarioError(ValueError):
    """Scenario file is missing a field or has one of the wrong type."""


@dataclass
class BidderSpec:
    name: str
    funds: int = 0
    bids: Dict[int, int] = field(default_factory=dict)
    auto_withdraw: bool = True


@dataclass
class Scenario:
    start_height: int
    duration: int
    beneficiary: str
    bidders: List[BidderSpec] = field(default_factory=list)
    finalize_at: Optional[int] = None

    @property
    def last_height(self) -> int:
        """Height the replay runs to before finalizing."""
        if self.finalize_at is not None:
            return self.finalize_at
        return self.start_height + self.duration + 1


def _require_int(value: Any, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ScenarioError(f"{where}: expected integer, got {value!r}")
    if value < 0:
        raise ScenarioError(f"{where}: must be non-negative, got {value}")
    return value


def _require_bool(value: Any, where: str) -> bool:
    if not isinstance(value, bool):
        raise ScenarioError(f"{where}: expected true or false, got {value!r}")
    return value


def parse_scenario(data: Any) -> Scenario:
    """Build a Scenario from the result of yaml.safe_load."""
    if not isinstance(data, dict):
        raise ScenarioError("scenario must be a mapping")

    auction = data.get("auction")
    if not isinstance(auction, dict):
        raise ScenarioError("missing 'auction' section")
    for key in ("start_height", "duration", "beneficiary"):
        if key not in auction:
            raise ScenarioError(f"auction: missing '{key}'")

    bidders = []
    for name, spec in (data.get("bidders") or {}).items():
        spec = spec or {}
        if not isinstance(spec, dict):
            raise ScenarioError(f"bidders.{name}: expected mapping")
        bids = {}
        for height, amount in (spec.get("bids") or {}).items():
            bids[_require_int(height, f"bidders.{name}.bids")] = \
                _require_int(amount, f"bidders.{name}.bids.{height}")
        bidders.append(BidderSpec(
            name=str(name),
            funds=_require_int(spec.get("funds", 0), f"bidders.{name}.funds"),
            bids=bids,
            auto_withdraw=_require_bool(
                spec.get("auto_withdraw", True), f"bidders.{name}.auto_withdraw"),
        ))

    finalize_at = data.get("finalize_at")
    if finalize_at is not None:
        finalize_at = _require_int(finalize_at, "finalize_at")

    duration = _require_int(auction["duration"], "auction.duration")
    if duration == 0:
        raise ScenarioError("auction.duration: must be positive")

    return Scenario(
        start_height=_require_int(auction["start_height"], "auction.start_height"),
        duration=duration,
        beneficiary=str(auction["beneficiary"]),
        bidders=bidders,
        finalize_at=finalize_at,
    )


def load_scenario(path: Path) -> Scenario:
    """Load a scenario YAML file."""
    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ScenarioError(f"{path}: invalid YAML: {e}") from e
    return parse_scenario(data)


def build_simulation(scenario: Scenario) -> AuctionSimulation:
    chain = Chain(genesis_time=0.0)
    config = AuctionConfig(
        start_height=scenario.start_height,
        duration=scenario.duration,
        beneficiary=generate_address(scenario.beneficiary),
    )
    sim = AuctionSimulation(chain, config)
    sim.names[config.beneficiary] = scenario.beneficiary
    for spec in scenario.bidders:
        sim.create_bidder(spec.name, spec.funds, spec.bids, spec.auto_withdraw)
    return sim


def run_scenario(scenario: Scenario) -> Dict[str, Any]:
    """Replay a scenario to its last height, finalize, and return the summary."""
    sim = build_simulation(scenario)
    sim.run_until(scenario.last_height)
    sim.finalize()
    summary = sim.summary()
    summary["auction"] = sim.auction.to_dict()
    return summary
