"""
Per-turn engine context.

Phases (AI turns, acquisition resolution, spawning) receive a TurnContext
instead of a reference to the whole Economy. It exposes only the lookups and
mutations those phases need: market and product lookup, quality ranking,
news emission, roster changes and the pending-acquisition queue.
"""

import logging
import random
from collections import deque
from typing import Dict, List, Optional, Set

from markets import rank_products
from models import Company, Market, PendingAcquisition, Product
from names import NameGenerator

logger = logging.getLogger(__name__)


class TurnContext:
    """Mutable view over the engine collections for one turn."""

    def __init__(
        self,
        turn: int,
        rng: random.Random,
        player: Company,
        ai_companies: List[Company],
        markets: List[Market],
        pending_acquisitions: List[PendingAcquisition],
        names: NameGenerator,
        used_product_names: Set[str],
        competitor_news: deque,
        public_news: deque,
    ):
        self.turn = turn
        self.rng = rng
        self.player = player
        self.ai_companies = ai_companies
        self.markets = markets
        self.pending_acquisitions = pending_acquisitions
        self.names = names
        self.used_product_names = used_product_names
        self.competitor_news = competitor_news
        self.public_news = public_news
        # market name -> {id(product): label}, dropped whenever rosters or products change
        self._ranks: Dict[str, Dict[int, str]] = {}

    # --- Lookups ---

    def market_by_name(self, name: str) -> Optional[Market]:
        for market in self.markets:
            if market.name == name:
                return market
        return None

    def products_in_market(self, market_name: str) -> List[Product]:
        """Player products, then AI products in roster order, then the imaginary product."""
        results = []
        for company in [self.player, *self.ai_companies]:
            results.extend(p for p in company.products.values() if p.market_name == market_name)
        market = self.market_by_name(market_name)
        if market is not None and market.imaginary_product is not None:
            results.append(market.imaginary_product)
        return results

    def quality_rank(self, product: Product) -> str:
        ranks = self._ranks.get(product.market_name)
        if ranks is None:
            ranks = rank_products(self.products_in_market(product.market_name))
            self._ranks[product.market_name] = ranks
        label = ranks.get(id(product))
        if label is None:
            raise ValueError(f"product of {product.owner_name} is not in market {product.market_name}")
        return label

    def invalidate_ranks(self) -> None:
        self._ranks.clear()

    def find_ai_company(self, name: str) -> Optional[Company]:
        for company in self.ai_companies:
            if company.name == name:
                return company
        return None

    def is_active(self, company: Company) -> bool:
        return company is self.player or any(c is company for c in self.ai_companies)

    def all_companies(self) -> List[Company]:
        return [self.player, *self.ai_companies]

    # --- News ---

    def emit_competitor_news(self, message: str) -> None:
        self.competitor_news.append(message)

    def emit_public_news(self, message: str) -> None:
        self.public_news.append(message)

    # --- Roster and deals ---

    def remove_ai_company(self, company: Company) -> None:
        self.ai_companies[:] = [c for c in self.ai_companies if c is not company]
        self.invalidate_ranks()

    def merge_companies(self, buyer: Company, target: Company) -> None:
        buyer.absorb(target)
        self.invalidate_ranks()
        logger.info("%s absorbed %s", buyer.name, target.name)

    def is_pending_target(self, target_name: str) -> bool:
        return any(p.target_name == target_name for p in self.pending_acquisitions)

    def submit_acquisition(self, buyer: Company, target_name: str, price: float) -> PendingAcquisition:
        pending = PendingAcquisition(buyer=buyer, target_name=target_name,
                                     price=price, turn_submitted=self.turn)
        self.pending_acquisitions.append(pending)
        return pending
