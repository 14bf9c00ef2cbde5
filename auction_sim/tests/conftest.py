"""
Pytest configuration for auction tests.

Shared fixtures: a chain parked before the window opens, funded bidder
addresses and an auction with the window (100, 150].
"""

import pytest

from auction_sim.chain import Chain, generate_address
from auction_sim.transactions import AuctionConfig, OpenAuction

START_HEIGHT = 100
DURATION = 50
FUNDS = 1_000


@pytest.fixture
def chain():
    return Chain(genesis_time=0.0)


@pytest.fixture
def beneficiary():
    return generate_address("beneficiary")


@pytest.fixture
def alice(chain):
    address = generate_address("alice")
    chain.fund(address, FUNDS)
    return address


@pytest.fixture
def bob(chain):
    address = generate_address("bob")
    chain.fund(address, FUNDS)
    return address


@pytest.fixture
def carol(chain):
    address = generate_address("carol")
    chain.fund(address, FUNDS)
    return address


@pytest.fixture
def config(beneficiary):
    return AuctionConfig(start_height=START_HEIGHT, duration=DURATION, beneficiary=beneficiary)


@pytest.fixture
def auction(chain, config):
    return OpenAuction(chain, config)
