"""
Open Auction

Single-asset auction over a fixed block-height window. Bidders send value
while the window is open; displaced bids are escrowed as pending returns
and the winning bid is released to the beneficiary once the window closes.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, Dict, Iterator, List, Optional, Any

from ..chain.primitives import Chain, TransferFault, generate_address


logger = logging.getLogger(__name__)


# =============================================================================
# Enums
# =============================================================================

class NotificationCode(Enum):
    """Status codes carried by every notification the auction emits."""
    TOO_EARLY = 1
    TOO_LATE = 2
    BID_TOO_LOW = 3
    FIRST_BID_ACCEPTED = 4
    BID_ACCEPTED = 5
    MONEY_SENT = 6
    NOTHING_TO_WITHDRAW = 7
    AUCTION_STILL_OPEN = 8
    AUCTION_ENDED = 9


ACCEPTED_CODES = frozenset({
    NotificationCode.FIRST_BID_ACCEPTED,
    NotificationCode.BID_ACCEPTED,
    NotificationCode.MONEY_SENT,
    NotificationCode.AUCTION_ENDED,
})


class AuctionPhase(Enum):
    """Phase of the bidding window at a given height."""
    NOT_YET_OPEN = auto()
    OPEN = auto()
    CLOSED = auto()


# =============================================================================
# Notifications
# =============================================================================

@dataclass
class Notification:
    """
    Record emitted once per call, and returned to the caller.

    `address` and `amount` describe the subject of the call: the bidder
    and bid for bids, the payee and payout for withdrawals and the
    beneficiary and winning bid for finalization.
    """
    code: NotificationCode
    height: int
    address: Optional[str] = None
    amount: int = 0

    @property
    def accepted(self) -> bool:
        return self.code in ACCEPTED_CODES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "name": self.code.name,
            "height": self.height,
            "address": self.address,
            "amount": self.amount,
        }


NotificationSink = Callable[[Notification], None]


# =============================================================================
# Configuration and Timing
# =============================================================================

@dataclass(frozen=True)
class AuctionConfig:
    """Deployment parameters. Fixed for the lifetime of the auction."""
    start_height: int
    duration: int
    beneficiary: str

    def __post_init__(self):
        if self.start_height < 0:
            raise ValueError(f"start_height must be non-negative, got {self.start_height}")
        if self.duration <= 0:
            raise ValueError(f"duration must be positive, got {self.duration}")
        if not self.beneficiary:
            raise ValueError("beneficiary is required")

    @property
    def end_height(self) -> int:
        """Last height at which a bid is accepted."""
        return self.start_height + self.duration

    @property
    def after_end(self) -> int:
        """First height at which the auction may be finalized."""
        return self.end_height + 1


def phase_at(config: AuctionConfig, height: int) -> AuctionPhase:
    """
    Classify `height` against the window (start_height, end_height].

    The opening boundary is exclusive and the closing one inclusive.
    """
    if height <= config.start_height:
        return AuctionPhase.NOT_YET_OPEN
    if height >= config.after_end:
        return AuctionPhase.CLOSED
    return AuctionPhase.OPEN


# =============================================================================
# Ledger
# =============================================================================

@dataclass
class AuctionLedger:
    """Mutable auction state. These four fields are all that is persisted."""
    ended: bool = False
    highest_bid: int = 0
    highest_bidder: Optional[str] = None
    pending_returns: Dict[str, int] = field(default_factory=dict)

    def owed_to(self, address: str) -> int:
        return self.pending_returns.get(address, 0)

    def credit(self, address: str, amount: int):
        """Add to an address's refundable balance."""
        if amount > 0:
            self.pending_returns[address] = self.owed_to(address) + amount

    def clear(self, address: str) -> int:
        """Remove and return an address's refundable balance."""
        return self.pending_returns.pop(address, 0)

    def total_owed(self) -> int:
        return sum(self.pending_returns.values())

    def copy(self) -> 'AuctionLedger':
        return AuctionLedger(
            ended=self.ended,
            highest_bid=self.highest_bid,
            highest_bidder=self.highest_bidder,
            pending_returns=dict(self.pending_returns),
        )

    def restore(self, other: 'AuctionLedger'):
        """Overwrite this ledger in place with the contents of `other`."""
        self.ended = other.ended
        self.highest_bid = other.highest_bid
        self.highest_bidder = other.highest_bidder
        self.pending_returns = dict(other.pending_returns)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize ledger to dictionary."""
        return {
            "ended": self.ended,
            "highest_bid": self.highest_bid,
            "highest_bidder": self.highest_bidder,
            "pending_returns": dict(self.pending_returns),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuctionLedger':
        """Deserialize ledger from dictionary."""
        return cls(
            ended=bool(data["ended"]),
            highest_bid=int(data["highest_bid"]),
            highest_bidder=data["highest_bidder"],
            pending_returns={k: int(v) for k, v in data["pending_returns"].items() if int(v) > 0},
        )


# =============================================================================
# Contract
# =============================================================================

class OpenAuction:
    """
    The auction contract.

    Each operation runs inside a chain transaction. If a transfer fails,
    every change made during the call is undone before the fault is raised:
    this auction's ledger, balances, queued notifications, and the effects
    of any call a receiver hook made meanwhile (on this auction or another
    contract on the same chain). Calls made from a receiver hook while a
    payout is in flight re-enter on the same thread and see the ledger as
    already updated.
    """

    def __init__(
        self,
        chain: Chain,
        config: AuctionConfig,
        address: Optional[str] = None,
        ledger: Optional[AuctionLedger] = None,
        sink: Optional[NotificationSink] = None,
    ):
        self.chain = chain
        self.config = config
        self.address = address or generate_address(
            f"auction:{config.beneficiary}:{config.start_height}:{config.duration}"
        )
        self.ledger = ledger if ledger is not None else AuctionLedger()
        self.notifications: List[Notification] = []
        self._sink = sink

    def phase(self, height: Optional[int] = None) -> AuctionPhase:
        if height is None:
            height = self.chain.height
        return phase_at(self.config, height)

    # -------------------------------------------------------------------------
    # Call boundary
    # -------------------------------------------------------------------------

    @contextmanager
    def _call(self) -> Iterator[int]:
        """Run one operation atomically. Yields the height snapshot for the call."""
        with self.chain.transaction():
            saved = self.ledger.copy()
            self.chain.record_undo(lambda: self.ledger.restore(saved))
            try:
                yield self.chain.height
            except TransferFault as e:
                logger.error("Call reverted at height %d: %s", self.chain.height, e)
                raise

    def _deliver(self, note: Notification):
        self.notifications.append(note)
        if self._sink is None:
            return
        try:
            self._sink(note)
        except Exception:
            logger.exception("Notification sink failed on %s", note.code.name)

    def _emit(self, code: NotificationCode, height: int,
              address: Optional[str] = None, amount: int = 0) -> Notification:
        note = Notification(code=code, height=height, address=address, amount=amount)
        logger.debug("%s at height %d (address=%s, amount=%d)", code.name, height, address, amount)
        self.chain.on_commit(lambda: self._deliver(note))
        return note

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def place_bid(self, caller: str, amount: int) -> Notification:
        """
        Bid `amount` from `caller`.

        Guards are checked in order: window not yet open, window closed
        (or auction ended), bid not strictly above the current highest.
        An accepted bid pulls the value from the caller and moves the
        previous leader's amount into their pending return.
        """
        if amount < 0:
            raise ValueError(f"Bid amount must be non-negative, got {amount}")

        with self._call() as height:
            phase = phase_at(self.config, height)
            if phase is AuctionPhase.NOT_YET_OPEN:
                return self._emit(NotificationCode.TOO_EARLY, height, caller, amount)
            if self.ledger.ended or phase is AuctionPhase.CLOSED:
                return self._emit(NotificationCode.TOO_LATE, height, caller, amount)
            if amount <= self.ledger.highest_bid:
                return self._emit(NotificationCode.BID_TOO_LOW, height, caller, amount)

            self.chain.transfer(caller, self.address, amount)

            previous = self.ledger.highest_bidder
            if previous is not None:
                self.ledger.credit(previous, self.ledger.highest_bid)
            self.ledger.highest_bidder = caller
            self.ledger.highest_bid = amount

            logger.info("Bid of %d by %s accepted at height %d", amount, caller, height)
            if previous is None:
                return self._emit(NotificationCode.FIRST_BID_ACCEPTED, height, caller, amount)
            return self._emit(NotificationCode.BID_ACCEPTED, height, caller, amount)

    def withdraw(self, caller: str) -> Notification:
        """Pay out the caller's pending return. The entry is cleared before the transfer."""
        with self._call() as height:
            amount = self.ledger.owed_to(caller)
            if amount <= 0:
                return self._emit(NotificationCode.NOTHING_TO_WITHDRAW, height, caller)

            self.ledger.clear(caller)
            self.chain.transfer(self.address, caller, amount)

            logger.info("Refunded %d to %s at height %d", amount, caller, height)
            return self._emit(NotificationCode.MONEY_SENT, height, caller, amount)

    def finalize_auction(self) -> Notification:
        """Close the auction and pay the winning bid to the beneficiary, once."""
        with self._call() as height:
            beneficiary = self.config.beneficiary
            if self.ledger.ended or phase_at(self.config, height) is not AuctionPhase.CLOSED:
                return self._emit(NotificationCode.AUCTION_STILL_OPEN, height, beneficiary)

            self.ledger.ended = True
            amount = self.ledger.highest_bid
            note = self._emit(NotificationCode.AUCTION_ENDED, height, beneficiary, amount)
            if amount > 0:
                self.chain.transfer(self.address, beneficiary, amount)

            logger.info("Auction ended at height %d, %d paid to %s", height, amount, beneficiary)
            return note

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    @property
    def balance(self) -> int:
        return self.chain.balance_of(self.address)

    def check_invariants(self):
        """Raise AssertionError if the ledger is inconsistent with itself or the chain."""
        ledger = self.ledger
        assert (ledger.highest_bidder is None) == (ledger.highest_bid == 0), \
            "highest_bidder must be set exactly when a bid has been accepted"
        assert all(v > 0 for v in ledger.pending_returns.values()), \
            "pending returns must not hold zero or negative entries"
        escrowed = ledger.total_owed()
        if not ledger.ended:
            escrowed += ledger.highest_bid
        assert escrowed <= self.balance, \
            f"escrowed {escrowed} exceeds contract balance {self.balance}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "start_height": self.config.start_height,
            "duration": self.config.duration,
            "beneficiary": self.config.beneficiary,
            "ledger": self.ledger.to_dict(),
        }
