"""
Simulation harness for open auction testing.

This module provides test infrastructure for running auctions with many
bidders over a range of block heights.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, List, Optional, Tuple, Any

from ..chain.primitives import Chain, InsufficientFunds, generate_address
from .open_auction import (
    AuctionConfig, OpenAuction, Notification, NotificationCode,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Bidder
# =============================================================================

class BidderState(Enum):
    """Bidder states."""
    IDLE = auto()  # No accepted bid yet
    LEADING = auto()  # Holds the highest bid
    OUTBID = auto()  # Displaced, refund waiting in pending returns
    REFUNDED = auto()  # Pending return collected
    WON = auto()  # Held the highest bid when the auction ended


@dataclass
class Bidder:
    """A bidder following a fixed schedule of bids."""
    name: str
    address: str
    bids: Dict[int, int] = field(default_factory=dict)  # height -> amount
    auto_withdraw: bool = True

    state: BidderState = BidderState.IDLE
    inbox: List[Notification] = field(default_factory=list)
    state_history: List[Tuple[int, BidderState]] = field(default_factory=list)
    failed_bids: List[Tuple[int, int]] = field(default_factory=list)
    refunded: int = 0

    def receive(self, note: Notification):
        self.inbox.append(note)

    def transition_to(self, new_state: BidderState, height: int):
        self.state = new_state
        self.state_history.append((height, new_state))

    def process_inbox(self):
        """Update state from auction events seen since the last tick."""
        for note in self.inbox:
            mine = note.address == self.address
            if note.code in (NotificationCode.FIRST_BID_ACCEPTED, NotificationCode.BID_ACCEPTED):
                if mine:
                    self.transition_to(BidderState.LEADING, note.height)
                elif self.state == BidderState.LEADING:
                    self.transition_to(BidderState.OUTBID, note.height)
            elif note.code == NotificationCode.MONEY_SENT and mine:
                self.refunded += note.amount
                if self.state == BidderState.OUTBID:
                    self.transition_to(BidderState.REFUNDED, note.height)
            elif note.code == NotificationCode.AUCTION_ENDED:
                if self.state == BidderState.LEADING:
                    self.transition_to(BidderState.WON, note.height)
        self.inbox = []

    def tick(self, auction: OpenAuction, height: int) -> List[Notification]:
        """Process one tick: read events, collect a refund, place a scheduled bid."""
        self.process_inbox()
        results = []

        # Covers refunds from being outbid and from raising our own bid
        if self.auto_withdraw and auction.ledger.owed_to(self.address) > 0:
            results.append(auction.withdraw(self.address))

        amount = self.bids.get(height)
        if amount is not None:
            try:
                results.append(auction.place_bid(self.address, amount))
            except InsufficientFunds as e:
                logger.warning("Bidder %s skipped bid at height %d: %s", self.name, height, e)
                self.failed_bids.append((height, amount))

        return results


# =============================================================================
# Simulation
# =============================================================================

class AuctionSimulation:
    """
    Helper class to run auction simulations.

    Owns the auction contract, routes its notifications to every bidder
    (auction events are public) and advances the chain one block per tick.
    """

    def __init__(self, chain: Chain, config: AuctionConfig):
        self.chain = chain
        self.auction = OpenAuction(chain, config, sink=self.route_notification)
        self.bidders: Dict[str, Bidder] = {}
        self.names: Dict[str, str] = {config.beneficiary: "beneficiary"}
        self.message_log: List[Notification] = []

    @property
    def current_height(self) -> int:
        return self.chain.height

    def create_bidder(self, name: str, funds: int = 0,
                      bids: Optional[Dict[int, int]] = None,
                      auto_withdraw: bool = True) -> Bidder:
        """Create a funded bidder actor."""
        if name in self.bidders:
            raise ValueError(f"Bidder already exists: {name}")

        address = generate_address(name)
        self.chain.fund(address, funds)
        bidder = Bidder(
            name=name,
            address=address,
            bids=dict(bids or {}),
            auto_withdraw=auto_withdraw,
        )
        self.bidders[name] = bidder
        self.names[address] = name
        return bidder

    def get_bidder(self, name: str) -> Bidder:
        if name not in self.bidders:
            raise ValueError(f"Unknown bidder: {name}")
        return self.bidders[name]

    def route_notification(self, note: Notification):
        """Deliver an auction notification to all bidders."""
        self.message_log.append(note)
        for bidder in self.bidders.values():
            bidder.receive(note)

    def tick(self) -> int:
        """
        Advance simulation by one block.

        Returns number of notifications emitted.
        """
        self.chain.mine()
        before = len(self.message_log)

        for bidder in self.bidders.values():
            bidder.tick(self.auction, self.chain.height)

        return len(self.message_log) - before

    def run_until(self, height: int) -> int:
        """
        Tick until the chain reaches `height`.

        Returns number of ticks run.
        """
        if height < self.chain.height:
            raise ValueError(f"Chain is already at {self.chain.height}, past {height}")
        ticks = 0
        while self.chain.height < height:
            self.tick()
            ticks += 1
        return ticks

    def finalize(self) -> Notification:
        """Finalize the auction at the current height and let bidders observe it."""
        note = self.auction.finalize_auction()
        for bidder in self.bidders.values():
            bidder.process_inbox()
        return note

    def name_of(self, address: Optional[str]) -> Optional[str]:
        if address is None:
            return None
        return self.names.get(address, address)

    def summary(self) -> Dict[str, Any]:
        """Plain-data summary of the auction and every bidder."""
        ledger = self.auction.ledger
        return {
            "height": self.chain.height,
            "ended": ledger.ended,
            "highest_bid": ledger.highest_bid,
            "highest_bidder": self.name_of(ledger.highest_bidder),
            "beneficiary_balance": self.chain.balance_of(self.auction.config.beneficiary),
            "contract_balance": self.auction.balance,
            "pending_returns": {
                self.name_of(address): amount
                for address, amount in ledger.pending_returns.items()
            },
            "bidders": {
                name: {
                    "state": bidder.state.name,
                    "balance": self.chain.balance_of(bidder.address),
                    "refunded": bidder.refunded,
                }
                for name, bidder in self.bidders.items()
            },
            "notifications": [
                {
                    "height": note.height,
                    "code": note.code.name,
                    "address": self.name_of(note.address),
                    "amount": note.amount,
                }
                for note in self.message_log
            ],
        }
