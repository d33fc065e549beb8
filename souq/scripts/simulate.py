#!/usr/bin/env python3
"""
Marketplace Simulation Script
Runs buyer negotiation rounds and allocator tasks against the demo marketplace.

Usage:
    python -m souq.scripts.simulate --rounds 3 --query dates --max-price 20

With persistence:
    DATABASE_URL=sqlite:///./souq.db python -m souq.scripts.simulate --persist
"""

import argparse
import asyncio
import logging
import sys
from decimal import Decimal

from souq.agents import BuyerAgent, TaskAllocatorAgent
from souq.config import get_settings
from souq.db import LedgerStore, create_session_factory
from souq.marketplace import build_demo_marketplace

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a Souq marketplace simulation")
    parser.add_argument("--rounds", type=int, default=3, help="Buyer negotiation rounds (default: 3)")
    parser.add_argument("--query", type=str, default="dates", help="Product query (default: dates)")
    parser.add_argument(
        "--max-price", type=Decimal, default=None, help="Highest acceptable price (default: none)"
    )
    parser.add_argument(
        "--allow-uncertified",
        action="store_true",
        help="Let the buyer consider products without a halal certificate",
    )
    parser.add_argument("--tasks", type=int, default=4, help="Allocator tasks to run (default: 4)")
    parser.add_argument(
        "--difficulty", type=int, default=None, help="Ledger proof-of-work difficulty override"
    )
    parser.add_argument(
        "--persist", action="store_true", help="Persist sealed blocks to DATABASE_URL"
    )
    return parser.parse_args(argv)


async def run_simulation(args: argparse.Namespace) -> dict:
    """
    Run the simulation.

    Returns:
        Summary dictionary
    """
    settings = get_settings()
    if args.difficulty is not None:
        settings = settings.model_copy(update={"ledger_difficulty": args.difficulty})

    store = LedgerStore(create_session_factory(settings.database_url)) if args.persist else None
    market = build_demo_marketplace(settings, store=store)
    await market.start()

    try:
        buyer = market.agents_by_role(BuyerAgent.role)[0]
        outcomes = []
        for round_number in range(1, args.rounds + 1):
            outcome = await buyer.buy(
                args.query,
                max_price=args.max_price,
                require_certified=not args.allow_uncertified,
            )
            logger.info(
                f"Round {round_number}: {outcome.status} "
                f"{outcome.product_id or ''} {outcome.price or ''}".rstrip()
            )
            outcomes.append(outcome)

        allocator = market.agents_by_role(TaskAllocatorAgent.role)[0]
        for listed in market.registry.list_products()[: args.tasks]:
            allocator.submit("price_check", {"product_id": listed.product_id})
        task_summary = await allocator.run_until_complete()
    finally:
        await market.stop()

    verification = market.chain.verify()
    return {
        "purchased": sum(1 for o in outcomes if o.status == "purchased"),
        "rounds": len(outcomes),
        "remaining_budget": str(buyer.budget),
        "tasks": task_summary,
        "height": market.chain.height,
        "products": market.registry.product_count,
        "ledger_valid": verification.valid,
        "ledger_error": verification.error,
        "dead_letters": len(market.bus.dead_letters()),
    }


def main(argv=None):
    """Main function to run the simulation."""
    args = parse_args(argv)

    try:
        summary = asyncio.run(run_simulation(args))
    except Exception as e:
        logger.error(f"Simulation failed: {e}", exc_info=True)
        sys.exit(1)

    logger.info("=" * 60)
    logger.info("SIMULATION COMPLETE")
    logger.info("=" * 60)
    logger.info(f"Purchases: {summary['purchased']}/{summary['rounds']}")
    logger.info(f"Remaining budget: {summary['remaining_budget']}")
    logger.info(f"Tasks: {summary['tasks']}")
    logger.info(f"Ledger height: {summary['height']} ({summary['products']} products)")
    logger.info(f"Dead letters: {summary['dead_letters']}")

    if not summary["ledger_valid"]:
        logger.error(f"Ledger verification failed: {summary['ledger_error']}")
        sys.exit(1)

    logger.info("Ledger verified")
    return summary


if __name__ == "__main__":
    main()
