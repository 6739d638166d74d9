"""
Market Revenue Distribution

Each quarter a market loses 8% of its trailing revenue to customer churn and
gains a growth pool; both pools are handed back to participants in proportion
to their effectiveness. Share arithmetic is vectorized with NumPy.
"""

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np

from config import CONFIG
from models import Market, Product

logger = logging.getLogger(__name__)


def distribute_market_revenue(
    market: Market,
    participants: Sequence[Product],
    excluded_owner: Optional[str] = None,
) -> None:
    """
    Run one quarter of churn and growth redistribution for a market.

    Args:
        market: Market being settled
        participants: Every product in the market, imaginary product included
        excluded_owner: Owner whose products sit this quarter out entirely
            (the player on the opening quarter)
    """
    in_recession = market.is_in_recession
    market.apply_recession()

    if not participants:
        market.last_quarter_total_revenue = 0.0
        return

    if market.last_quarter_total_revenue <= 0:
        market.last_quarter_total_revenue = sum(p.revenue for p in participants)

    growth_pool = 0.0 if in_recession else market.size * market.growth_rate / 4.0
    churn_pool = CONFIG.markets.churn_rate * market.last_quarter_total_revenue

    eligible = np.array([p.owner_name != excluded_owner for p in participants], dtype=bool)
    previous = np.array([p.revenue for p in participants], dtype=float)

    for product, active in zip(participants, eligible):
        if active:
            product.update_effective_spend()
            product.update_effectiveness()

    effectiveness = np.array([p.effectiveness for p in participants], dtype=float)
    effectiveness = np.where(eligible, effectiveness, 0.0)
    total_eff = float(effectiveness.sum())
    if total_eff <= 0:
        total_eff = 1.0

    shares = effectiveness / total_eff
    retained = previous * (1.0 - CONFIG.markets.churn_rate)
    updated = np.where(eligible, retained + shares * (churn_pool + growth_pool), previous)

    for product, active, old, new in zip(participants, eligible, previous, updated):
        product.revenue = float(new)
        if active and old > 0:
            product.record_growth(float((new - old) / old * 100.0))

    market.last_quarter_total_revenue = float(updated.sum())
    if not in_recession:
        market.size = market.last_quarter_total_revenue

    logger.debug("market %s: churn=%.2f growth=%.2f total=%.2f",
                 market.name, churn_pool, growth_pool, market.last_quarter_total_revenue)


def _rank_for_position(position: int, count: int) -> str:
    if position == 0:
        return "Very Good"
    if position == count - 1:
        return "Very Bad"
    if position <= count // 4:
        return "Good"
    if position >= (3 * count) // 4:
        return "Bad"
    return "Moderate"


def rank_products(market_products: List[Product]) -> Dict[int, str]:
    """Quality labels for every product of one market, keyed by id(product)."""
    ranked = sorted(market_products, key=lambda p: p.effectiveness, reverse=True)
    count = len(ranked)
    return {id(p): _rank_for_position(i, count) for i, p in enumerate(ranked)}


def quality_rank(product: Product, market_products: List[Product]) -> str:
    """
    Market-relative quality label from the product's effectiveness position.

    The leader is Very Good and the laggard Very Bad; the top quartile is
    Good, the bottom quartile Bad, everything else Moderate.
    """
    if not any(p is product for p in market_products):
        raise ValueError(f"product of {product.owner_name} is not in market {product.market_name}")
    return rank_products(market_products)[id(product)]
