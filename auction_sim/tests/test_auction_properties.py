"""
Property tests for the Open Auction contract.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from auction_sim.chain import Chain, generate_address
from auction_sim.transactions import (
    AuctionConfig, AuctionLedger, NotificationCode, OpenAuction,
)

from conftest import START_HEIGHT, DURATION

FUNDS = 10**9

BIDDERS = [generate_address(f"bidder_{i}") for i in range(4)]


def build_auction():
    chain = Chain(genesis_time=0.0)
    for address in BIDDERS:
        chain.fund(address, FUNDS)
    config = AuctionConfig(
        start_height=START_HEIGHT,
        duration=DURATION,
        beneficiary=generate_address("beneficiary"),
    )
    return chain, OpenAuction(chain, config)


@given(
    height=st.integers(min_value=0, max_value=START_HEIGHT),
    amount=st.integers(min_value=0, max_value=10**6),
)
def test_bids_before_window_are_too_early(height, amount):
    """Any bid at or before the start height is too early."""
    chain, auction = build_auction()
    chain.advance_to(height)

    note = auction.place_bid(BIDDERS[0], amount)

    assert note.code == NotificationCode.TOO_EARLY
    assert auction.ledger == AuctionLedger()


@given(
    height=st.integers(min_value=START_HEIGHT + DURATION + 1, max_value=START_HEIGHT + 10 * DURATION),
    amount=st.integers(min_value=0, max_value=10**6),
)
def test_bids_after_window_are_too_late(height, amount):
    """Any bid after the end height is too late."""
    chain, auction = build_auction()
    chain.advance_to(height)

    note = auction.place_bid(BIDDERS[0], amount)

    assert note.code == NotificationCode.TOO_LATE
    assert auction.ledger == AuctionLedger()


@given(
    leading=st.integers(min_value=1, max_value=10**6),
    offset=st.integers(min_value=0, max_value=10**6),
)
def test_bids_at_or_below_highest_are_rejected(leading, offset):
    """Bids not above the highest bid leave the ledger unchanged."""
    chain, auction = build_auction()
    chain.advance_to(START_HEIGHT + 1)
    auction.place_bid(BIDDERS[0], leading)
    before = auction.ledger.copy()

    note = auction.place_bid(BIDDERS[1], max(leading - offset, 0))

    assert note.code == NotificationCode.BID_TOO_LOW
    assert auction.ledger == before


# Each step: (bidder index, amount, blocks to advance before the bid)
bid_steps = st.lists(
    st.tuples(
        st.integers(min_value=0, max_value=len(BIDDERS) - 1),
        st.integers(min_value=0, max_value=1_000),
        st.integers(min_value=0, max_value=3),
    ),
    min_size=1,
    max_size=30,
)


@settings(max_examples=200)
@given(steps=bid_steps, withdraw_mask=st.lists(st.booleans(), min_size=30, max_size=30))
def test_ledger_tracks_bids_and_displacements(steps, withdraw_mask):
    """Random bids and withdrawals keep escrow equal to the ledger total."""
    chain, auction = build_auction()
    chain.advance_to(START_HEIGHT + 1)
    expected_owed = {}
    last_accepted = None

    for i, (index, amount, advance) in enumerate(steps):
        # Stay inside the window
        if advance and chain.height + advance <= START_HEIGHT + DURATION:
            chain.mine(advance)
        caller = BIDDERS[index]
        previous_bid = auction.ledger.highest_bid
        previous_bidder = auction.ledger.highest_bidder

        note = auction.place_bid(caller, amount)

        if amount > previous_bid:
            assert note.accepted
            last_accepted = (caller, amount)
            if previous_bidder is not None:
                expected_owed[previous_bidder] = expected_owed.get(previous_bidder, 0) + previous_bid
        else:
            assert note.code == NotificationCode.BID_TOO_LOW

        if withdraw_mask[i]:
            owed = expected_owed.pop(caller, 0)
            result = auction.withdraw(caller)
            if owed:
                assert result.code == NotificationCode.MONEY_SENT
                assert result.amount == owed
            else:
                assert result.code == NotificationCode.NOTHING_TO_WITHDRAW

        assert auction.ledger.pending_returns == expected_owed
        auction.check_invariants()

    if last_accepted is not None:
        assert (auction.ledger.highest_bidder, auction.ledger.highest_bid) == last_accepted
    else:
        assert auction.ledger.highest_bidder is None


@given(
    amount=st.integers(min_value=1, max_value=10**6),
    calls=st.integers(min_value=2, max_value=5),
    extra=st.integers(min_value=1, max_value=100),
)
def test_finalize_pays_exactly_once(amount, calls, extra):
    """Repeated finalize calls pay the beneficiary once."""
    chain, auction = build_auction()
    beneficiary = auction.config.beneficiary
    chain.advance_to(START_HEIGHT + 1)
    auction.place_bid(BIDDERS[0], amount)
    chain.advance_to(auction.config.end_height + extra)

    codes = [auction.finalize_auction().code for _ in range(calls)]

    assert codes[0] == NotificationCode.AUCTION_ENDED
    assert set(codes[1:]) == {NotificationCode.AUCTION_STILL_OPEN}
    assert chain.balance_of(beneficiary) == amount


@given(height=st.integers(min_value=0, max_value=START_HEIGHT + DURATION))
def test_finalize_rejected_while_window_open(height):
    """Finalize before the window closes changes nothing."""
    chain, auction = build_auction()
    chain.advance_to(height)

    note = auction.finalize_auction()

    assert note.code == NotificationCode.AUCTION_STILL_OPEN
    assert not auction.ledger.ended
