"""
Tests for the simulation script
"""

import pytest

from souq.config import reset_settings
from souq.scripts.simulate import parse_args, run_simulation


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    monkeypatch.setenv("SOUQ_ACK_TIMEOUT", "0.5")
    monkeypatch.setenv("SOUQ_NEGOTIATION_TIMEOUT", "0.5")
    reset_settings()
    yield
    reset_settings()


def test_parse_args_defaults():
    args = parse_args([])

    assert args.rounds == 3
    assert args.query == "dates"
    assert args.max_price is None
    assert not args.persist


@pytest.mark.asyncio
async def test_run_simulation():
    args = parse_args(["--rounds", "3", "--tasks", "2", "--difficulty", "1"])

    summary = await run_simulation(args)

    assert summary["rounds"] == 3
    assert summary["purchased"] == 2
    assert summary["remaining_budget"] == "69.50"
    assert summary["tasks"]["done"] == 2
    assert summary["products"] == 6
    assert summary["height"] >= 1
    assert summary["ledger_valid"] is True

