"""
Auction Chain - Simulated execution environment.

This package provides:
- primitives: Block, Chain, hashing and address helpers
- errors raised by value transfers
"""

from .primitives import (
    hash_data,
    generate_address,
    Block,
    Chain,
    InsufficientFunds,
    TransferRefused,
    TransferFault,
)

__all__ = [
    # Primitives
    "hash_data",
    "generate_address",
    "Block",
    "Chain",
    # Errors
    "InsufficientFunds",
    "TransferRefused",
    "TransferFault",
]
