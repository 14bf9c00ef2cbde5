"""
Core chain primitives: hashing, addresses, Block, and Chain.

The Chain is the execution environment an auction contract runs against.
It supplies the current block height and moves value between addresses.
"""

import hashlib
import json
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional


logger = logging.getLogger(__name__)


# =============================================================================
# Hashing and Addresses (simplified for simulation)
# =============================================================================

def hash_data(data: dict) -> str:
    """Compute deterministic hash of a dictionary."""
    canonical = json.dumps(data, sort_keys=True, separators=(',', ':'))
    return hashlib.sha256(canonical.encode()).hexdigest()[:16]


def generate_address(label: str) -> str:
    """Derive a deterministic 20-byte hex address from a label."""
    return "0x" + hashlib.sha256(f"address:{label}".encode()).hexdigest()[:40]


# =============================================================================
# Errors
# =============================================================================

class InsufficientFunds(ValueError):
    """Sender cannot cover a transfer."""

    def __init__(self, address: str, balance: int, amount: int):
        super().__init__(f"{address} has {balance}, cannot send {amount}")
        self.address = address
        self.balance = balance
        self.amount = amount


class TransferRefused(Exception):
    """Raised by a receiver hook that will not accept incoming value."""


class TransferFault(Exception):
    """An outbound transfer failed after the sender committed to it."""

    def __init__(self, recipient: str, amount: int, reason: str = ""):
        message = f"transfer of {amount} to {recipient} failed"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.recipient = recipient
        self.amount = amount
        self.reason = reason


# Receiver hook: called as hook(sender, amount) after the recipient is credited
ReceiverHook = Callable[[str, int], None]


# =============================================================================
# Block Structure
# =============================================================================

@dataclass
class Block:
    """
    A block in the simulated chain.

    Blocks carry no transactions of their own; they exist to advance
    the height clock and to anchor a hash chain that tests can verify.
    """
    height: int
    previous_hash: str
    timestamp: float
    payload: dict = field(default_factory=dict)
    block_hash: str = ""

    def __post_init__(self):
        if not self.block_hash:
            self.block_hash = self.compute_hash()

    def compute_hash(self) -> str:
        """Compute the hash of this block."""
        data = {
            "height": self.height,
            "previous_hash": self.previous_hash,
            "timestamp": self.timestamp,
            "payload": self.payload,
        }
        return hash_data(data)

    def to_dict(self) -> dict:
        """Serialize block to dictionary."""
        return {
            "height": self.height,
            "previous_hash": self.previous_hash,
            "timestamp": self.timestamp,
            "payload": self.payload,
            "block_hash": self.block_hash,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Block':
        """Deserialize block from dictionary."""
        return cls(
            height=data["height"],
            previous_hash=data["previous_hash"],
            timestamp=data["timestamp"],
            payload=data["payload"],
            block_hash=data["block_hash"],
        )


# =============================================================================
# Chain
# =============================================================================

class Chain:
    """
    Simulated execution environment.

    Provides:
    - Block height (the only clock an auction may read)
    - Account balances and value transfers
    - Receiver hooks, so a recipient can refuse funds or call back in
    - Transactions: every call made inside one (including calls made by
      other contracts from receiver hooks) is undone together if it fails
    """

    def __init__(self, genesis_time: Optional[float] = None, block_interval: float = 12.0):
        self.block_interval = block_interval
        self.blocks: List[Block] = []
        self.balances: Dict[str, int] = {}
        self._receivers: Dict[str, ReceiverHook] = {}

        # One lock for the whole chain; calls are serialized like transactions
        self._lock = threading.RLock()
        self._depth = 0
        self._undo: List[Callable[[], None]] = []
        self._on_commit: List[Callable[[], None]] = []

        if genesis_time is None:
            genesis_time = time.time()
        genesis = Block(
            height=0,
            previous_hash="0" * 16,
            timestamp=genesis_time,
            payload={"created": genesis_time},
        )
        self.blocks.append(genesis)

    @property
    def head(self) -> Block:
        """Get the most recent block."""
        return self.blocks[-1]

    @property
    def height(self) -> int:
        """Current block height."""
        return self.head.height

    def mine(self, count: int = 1, payload: Optional[dict] = None) -> Block:
        """Append `count` empty blocks and return the new head."""
        if count < 1:
            raise ValueError(f"Cannot mine {count} blocks")
        for _ in range(count):
            block = Block(
                height=self.height + 1,
                previous_hash=self.head.block_hash,
                timestamp=self.head.timestamp + self.block_interval,
                payload=dict(payload or {}),
            )
            self.blocks.append(block)
        return self.head

    def advance_to(self, height: int) -> Block:
        """Mine blocks until the chain reaches `height`."""
        if height < self.height:
            raise ValueError(f"Cannot rewind chain from {self.height} to {height}")
        if height > self.height:
            self.mine(height - self.height)
        return self.head

    def verify_chain(self) -> bool:
        """Verify the chain's integrity."""
        if not self.blocks:
            return False

        if self.blocks[0].previous_hash != "0" * 16:
            return False

        for i in range(1, len(self.blocks)):
            if self.blocks[i].previous_hash != self.blocks[i-1].block_hash:
                return False
            if self.blocks[i].height != i:
                return False

        return True

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Run a block of calls as one unit.

        Transactions nest. If the body raises, every undo action recorded
        since it began runs in reverse order and commit callbacks queued
        since then are dropped. Commit callbacks run once the outermost
        transaction completes.
        """
        with self._lock:
            undo_mark = len(self._undo)
            commit_mark = len(self._on_commit)
            self._depth += 1
            try:
                yield
            except Exception:
                for action in reversed(self._undo[undo_mark:]):
                    action()
                del self._undo[undo_mark:]
                del self._on_commit[commit_mark:]
                raise
            finally:
                self._depth -= 1
            if self._depth == 0:
                callbacks, self._on_commit = self._on_commit, []
                self._undo = []
                for callback in callbacks:
                    callback()

    def record_undo(self, action: Callable[[], None]):
        """Register an action that reverses a change if the open transaction fails."""
        if self._depth > 0:
            self._undo.append(action)

    def on_commit(self, callback: Callable[[], None]):
        """Run `callback` when the outermost transaction commits (now, if none is open)."""
        if self._depth > 0:
            self._on_commit.append(callback)
        else:
            callback()

    # -------------------------------------------------------------------------
    # Balances
    # -------------------------------------------------------------------------

    def fund(self, address: str, amount: int):
        """Mint `amount` into `address` (test and scenario setup only)."""
        if amount < 0:
            raise ValueError(f"Cannot fund negative amount {amount}")
        self.balances[address] = self.balances.get(address, 0) + amount

    def balance_of(self, address: str) -> int:
        return self.balances.get(address, 0)

    def register_receiver(self, address: str, hook: Optional[ReceiverHook]):
        """Install (or with None, remove) the hook run when `address` receives value."""
        if hook is None:
            self._receivers.pop(address, None)
        else:
            self._receivers[address] = hook

    def _move(self, sender: str, recipient: str, amount: int):
        self.balances[sender] = self.balance_of(sender) - amount
        self.balances[recipient] = self.balance_of(recipient) + amount

    def transfer(self, sender: str, recipient: str, amount: int):
        """
        Move `amount` from sender to recipient.

        The recipient is credited before its hook runs, so a hook that
        calls back into a contract sees the post-transfer balances. If
        the hook raises TransferRefused, the credit and everything the
        hook did are undone and a TransferFault is raised to the sender.
        """
        if amount < 0:
            raise ValueError(f"Cannot transfer negative amount {amount}")

        with self.transaction():
            balance = self.balance_of(sender)
            if balance < amount:
                raise InsufficientFunds(sender, balance, amount)

            self._move(sender, recipient, amount)
            self.record_undo(lambda: self._move(recipient, sender, amount))
            logger.debug("Transferred %d from %s to %s", amount, sender, recipient)

            hook = self._receivers.get(recipient)
            if hook is None:
                return
            try:
                hook(sender, amount)
            except TransferRefused as e:
                raise TransferFault(recipient, amount, str(e)) from e

    def total_supply(self) -> int:
        return sum(self.balances.values())
