"""
Pytest configuration and shared fixtures
"""

import sys
from decimal import Decimal
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from souq.config import Settings
from souq.ledger import Blockchain, ProductRegistry
from souq.marketplace import build_demo_marketplace
from souq.messaging import MessageBus

ADMIN = "registry-admin"


@pytest.fixture
def settings():
    """Fast settings: low proof-of-work difficulty and short timeouts."""
    return Settings(
        database_url="sqlite://",
        ledger_difficulty=1,
        ledger_max_block_transactions=50,
        ledger_admin=ADMIN,
        mailbox_size=20,
        send_timeout=0.2,
        ack_timeout=0.2,
        max_delivery_attempts=3,
        negotiation_timeout=0.5,
        task_timeout=0.5,
        max_task_attempts=3,
    )


@pytest.fixture
def bus():
    return MessageBus(mailbox_size=20, send_timeout=0.2, ack_timeout=0.2, max_delivery_attempts=3)


@pytest.fixture
def chain():
    return Blockchain(difficulty=1, max_block_transactions=50)


@pytest.fixture
def registry(chain):
    registry = ProductRegistry(chain, admin=ADMIN)
    registry.register_certifier(ADMIN, "certifier-halal")
    return registry


@pytest.fixture
def listed_registry(registry):
    """Registry with one certified and one uncertified product."""
    registry.add_product("seller-a", "dates", "Medjool Dates", Decimal("12.50"), ["dates"])
    registry.add_product("seller-a", "sauce", "Cooking Sauce", Decimal("4.10"), ["tomato"])
    registry.certify("certifier-halal", "dates", "HC-1")
    return registry


@pytest.fixture
def marketplace(settings):
    """Demo marketplace (not started) without persistence."""
    return build_demo_marketplace(settings)
