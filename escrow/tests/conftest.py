from __future__ import annotations

import pytest

from escrow.config import load_config
from escrow.engine import EscrowFactory, SellerEscrow
from escrow.runtime import Chain, FungibleToken
from escrow.types import address_from_label

SELLER = address_from_label("seller")
BUYER = address_from_label("buyer")
OWNER = address_from_label("owner")
ARBITRATOR = address_from_label("arbitrator")
FEE_RECIPIENT = address_from_label("fee-recipient")

GENESIS_TIME = 1_700_000_000
FEE_BPS = 30
STAKE = 10**18

SELLER_FUNDS = 100 * 10**18
BUYER_FUNDS = 10 * 10**18
TOKEN_SUPPLY = 10**24


@pytest.fixture
def chain() -> Chain:
    # hermetic config: environment overrides must not leak into tests
    return Chain(GENESIS_TIME, config=load_config(env={}))


@pytest.fixture
def factory(chain: Chain) -> EscrowFactory:
    return EscrowFactory(
        chain,
        owner=OWNER,
        arbitrator=ARBITRATOR,
        fee_recipient=FEE_RECIPIENT,
        fee_bps=FEE_BPS,
        dispute_stake=STAKE,
    )


@pytest.fixture
def escrow(chain: Chain, factory: EscrowFactory) -> SellerEscrow:
    chain.mint_native(SELLER, SELLER_FUNDS)
    chain.mint_native(BUYER, BUYER_FUNDS)
    return factory.deploy(sender=SELLER)


@pytest.fixture
def token(chain: Chain, escrow: SellerEscrow) -> FungibleToken:
    t = FungibleToken(chain, name="Test Dollar", symbol="TUSD", decimals=6)
    t.mint(SELLER, TOKEN_SUPPLY)
    t.approve(escrow.address, TOKEN_SUPPLY, sender=SELLER)
    return t
