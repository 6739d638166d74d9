"""
Technopoly Turn Orchestrator

This module implements the main simulation coordinator that advances the
player company, the AI roster and the product markets one quarter at a time.

Randomness is confined to a single injected random.Random, so a seeded
Economy replays identically.
"""

import logging
import random
from collections import deque
from typing import Callable, Dict, List, Optional, Tuple

from ai import AIController
from config import CONFIG
from context import TurnContext
from events import EventManager
from finances import format_money, update_finances
from markets import distribute_market_revenue
from models import (
    Company,
    Market,
    PendingAcquisition,
    Product,
    SnapshotError,
)
from names import NameGenerator

logger = logging.getLogger(__name__)

SnapshotSink = Callable[[Dict[str, object]], None]


class Economy:
    """
    Main simulation coordinator for the quarterly business game.

    Owns every top-level collection (player, AI roster, markets, pending
    acquisitions, news feeds) and hands phases a TurnContext over them.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        seed: Optional[int] = None,
        start_year: Optional[int] = None,
        snapshot_sink: Optional[SnapshotSink] = None,
        setup: bool = True,
    ):
        """
        Create an engine, optionally with a fresh market and AI setup.

        Args:
            rng: Shared random source; built from seed (or CONFIG.seed) when omitted
            seed: Seed for the random source when rng is not given
            start_year: Calendar year of turn 0
            snapshot_sink: Called with the full state snapshot once per turn
            setup: Create the initial markets and AI companies
        """
        if rng is None:
            rng = random.Random(seed if seed is not None else CONFIG.seed)
        self.rng = rng
        self.names = NameGenerator(rng)
        self.ai = AIController(rng)
        self.snapshot_sink = snapshot_sink

        self.turn = 0
        self.start_year = CONFIG.time.start_year if start_year is None else start_year
        self.game_over = False
        self.outcome: Optional[str] = None  # "won" / "lost" once the game ends

        self.player = self._default_player()
        self.player_founded = False
        self.initial_shares_assigned = False
        self.ai_companies: List[Company] = []
        self.markets: List[Market] = []
        self.pending_acquisitions: List[PendingAcquisition] = []

        self.used_company_names = set()
        self.used_product_names = set()
        self.spawned_company_count = 0
        self.spawned_market_count = 0

        self.competitor_news: deque = deque(maxlen=CONFIG.news.max_news_items)
        self.public_news: deque = deque(maxlen=CONFIG.news.max_news_items)

        self.event_manager = EventManager([], rng, self.start_year)
        if setup:
            self.setup_game()

    # --- Setup ---

    @staticmethod
    def _default_player() -> Company:
        config = CONFIG.player
        return Company(
            name=config.default_name,
            cash=config.starting_cash,
            employees=config.starting_employees,
            campuses=[config.starting_campus],
        )

    def setup_game(self) -> None:
        """Create the initial markets, the event engine over them, and the AI roster."""
        self.markets = [Market.random(name, self.rng) for name in CONFIG.markets.initial_market_names]
        self.event_manager = EventManager(self.markets, self.rng, self.start_year)
        self._create_ai_companies()
        logger.info("new game: %d markets, %d AI companies",
                    len(self.markets), len(self.ai_companies))

    def _create_ai_companies(self) -> None:
        low, high = CONFIG.ai.initial_assignment_range
        for setup in CONFIG.ai.setups.values():
            for _ in range(setup.initial_count):
                name = self.names.company_name(self.used_company_names)
                company = Company(
                    name=name,
                    tier=setup.name,
                    cash=self.rng.uniform(*setup.initial_cash_range),
                    employees=self.rng.randint(*setup.initial_employee_range),
                    campuses=[setup.initial_campus],
                )
                count = min(setup.initial_market_count, len(self.markets))
                for market in self.rng.sample(self.markets, count):
                    product = Product(owner_name=name, market_name=market.name)
                    for category in product.assigned_employees:
                        product.assigned_employees[category] = self.rng.randint(low, high)
                    company.products[self.names.product_name(self.used_product_names)] = product
                self.ai_companies.append(company)

    def assign_initial_market_shares(self) -> None:
        """
        Split each market's first quarter (size / 4) across its companies by
        tier ratio, then evenly across each company's products there.

        Runs once per game; the player counts as a Startup.
        """
        if self.initial_shares_assigned:
            return

        player_ratio = CONFIG.ai.setups[CONFIG.player.share_tier].share_ratio
        for market in self.markets:
            entries: List[Tuple[int, List[Product]]] = []
            for company in [self.player, *self.ai_companies]:
                products = [p for p in company.products.values() if p.market_name == market.name]
                if not products:
                    continue
                ratio = player_ratio if company.is_player else CONFIG.ai.setups[company.tier].share_ratio
                entries.append((ratio, products))
            if not entries:
                continue

            total_ratio = sum(ratio for ratio, _ in entries)
            first_quarter = market.size / 4.0
            for ratio, products in entries:
                each = (ratio / total_ratio) * first_quarter / len(products)
                for product in products:
                    product.revenue += each

        self.initial_shares_assigned = True

    # --- Queries ---

    def context(self) -> TurnContext:
        return TurnContext(
            turn=self.turn,
            rng=self.rng,
            player=self.player,
            ai_companies=self.ai_companies,
            markets=self.markets,
            pending_acquisitions=self.pending_acquisitions,
            names=self.names,
            used_product_names=self.used_product_names,
            competitor_news=self.competitor_news,
            public_news=self.public_news,
        )

    def current_date(self) -> Tuple[int, int]:
        return CONFIG.quarter_label(self.turn, self.start_year)

    def market_by_name(self, name: str) -> Optional[Market]:
        return self.context().market_by_name(name)

    def find_ai_company(self, name: str) -> Optional[Company]:
        return self.context().find_ai_company(name)

    def all_companies(self) -> List[Company]:
        return [self.player, *self.ai_companies]

    def market_cap_shares(self) -> Dict[str, float]:
        """Each company's fraction of the combined market cap."""
        total = sum(c.market_cap for c in self.all_companies())
        if total <= 0:
            return {c.name: 0.0 for c in self.all_companies()}
        return {c.name: c.market_cap / total for c in self.all_companies()}

    def event_feed(self) -> List[str]:
        year, quarter = self.current_date()
        return self.event_manager.format_news_feed(year, quarter)

    # --- Turn ---

    def step(self) -> None:
        """
        Execute one full quarter.

        Follows strict phase ordering:
        1. AI companies act (bankrupt ones are merged away instead)
        2. Draw and apply one event, age the recession countdown
        3. Revenue distribution for every market
        4. Resolve pending acquisitions
        5. Financial settlement for the player and every AI company
        6. Hand a snapshot to the sink
        7. End-game check
        8. Advance the turn index
        9. Periodic company and market spawns
        """
        if self.game_over:
            return

        if self.turn == 0 and not self.initial_shares_assigned:
            self.assign_initial_market_shares()

        ctx = self.context()

        self._run_ai_phase(ctx)
        self._run_event_phase()
        self._distribute_revenue(ctx)
        ctx.invalidate_ranks()
        self.resolve_pending_acquisitions(ctx)
        self._settle_finances()

        if self.snapshot_sink is not None:
            self.snapshot_sink(self.to_dict())

        self.check_end_game()

        self.turn += 1
        ctx.turn = self.turn
        if self.turn % CONFIG.spawn.company_interval_turns == 0:
            self.spawn_companies(ctx)
        if self.turn % CONFIG.spawn.market_interval_turns == 0:
            self.spawn_market(ctx)

        logger.debug("turn %d complete: %d AI companies, %d markets",
                     self.turn, len(self.ai_companies), len(self.markets))

    def _run_ai_phase(self, ctx: TurnContext) -> None:
        for company in list(self.ai_companies):
            # Absorbed earlier in this phase by a bankruptcy merge
            if not ctx.is_active(company):
                continue
            self.ai.take_turn(company, ctx)

    def _run_event_phase(self) -> None:
        event = self.event_manager.pick_random_event()
        self.event_manager.apply_event(event, turn=self.turn)
        self.event_manager.update_recession()

    def _distribute_revenue(self, ctx: TurnContext) -> None:
        excluded = self.player.name if self.turn == 0 else None
        for market in self.markets:
            distribute_market_revenue(market, ctx.products_in_market(market.name), excluded)

    def _settle_finances(self) -> None:
        update_finances(self.all_companies())
        self.player.update_negative_cash_quarters()

    # --- Acquisitions and merges ---

    def merge_companies(self, buyer: Company, target: Company) -> None:
        self.context().merge_companies(buyer, target)

    def resolve_pending_acquisitions(self, ctx: Optional[TurnContext] = None) -> None:
        """Resolve every offer submitted at least one turn ago; younger offers wait."""
        ctx = ctx or self.context()
        waiting = []
        for pending in list(self.pending_acquisitions):
            if self.turn < pending.turn_submitted + 1:
                waiting.append(pending)
                continue
            self._resolve_acquisition(pending, ctx)
        self.pending_acquisitions[:] = waiting

    def _resolve_acquisition(self, pending: PendingAcquisition, ctx: TurnContext) -> bool:
        target_name = pending.target_name
        buyer = pending.buyer
        target = ctx.find_ai_company(target_name)

        if target is None:
            failure = "no longer exists"
        elif not ctx.is_active(buyer):
            failure = "buyer no longer exists"
        elif buyer.cash < pending.price:
            failure = "insufficient funds"
        elif target.is_growth_protected():
            failure = "top-2 growth"
        else:
            failure = None

        if failure is not None:
            ctx.emit_competitor_news(f"Acquisition of {target_name} failed; {failure}.")
            logger.info("acquisition of %s by %s failed: %s", target_name, buyer.name, failure)
            return False

        buyer.cash -= pending.price
        ctx.merge_companies(buyer, target)
        ctx.remove_ai_company(target)
        ctx.emit_public_news(
            f"{buyer.name} acquired {target_name} for {format_money(pending.price)}!"
        )
        return True

    # --- End game ---

    def check_end_game(self) -> bool:
        if self.player.is_bankrupt():
            self._end_game("lost", "You lost! Your investors shut you down because your "
                                   "cash was negative 4 consecutive quarters.")
        elif not self.ai_companies:
            self._end_game("won", "You acquired all of your competitors. Technopoly!")
        else:
            share = self.market_cap_shares().get(self.player.name, 0.0)
            if share > CONFIG.end_game.market_cap_share_to_win:
                self._end_game("won", "You got 70 percent of the market's total market "
                                      "capitalization. Technopoly!")
        return self.game_over

    def _end_game(self, outcome: str, message: str) -> None:
        self.game_over = True
        self.outcome = outcome
        self.public_news.append(message)
        logger.info("game over at turn %d: %s", self.turn, outcome)

    # --- Spawning ---

    def spawn_companies(self, ctx: TurnContext) -> List[Company]:
        """Add a wave of AI companies with products in the setup markets."""
        spawn = CONFIG.spawn
        tiers = list(spawn.tier_weights)
        weights = [spawn.tier_weights[t] for t in tiers]
        setup_markets = self.event_manager.markets
        spawned = []

        for _ in range(spawn.companies_per_wave):
            if self.spawned_company_count >= spawn.max_spawned_companies:
                break

            tier = self.rng.choices(tiers, weights=weights)[0]
            setup = CONFIG.ai.setups[tier]
            name = self.names.company_name(self.used_company_names)
            company = Company(
                name=name,
                tier=tier,
                cash=self.rng.uniform(*setup.spawn_cash_range),
                employees=self.rng.randint(*setup.spawn_employee_range),
                campuses=[setup.spawn_campus],
            )

            count = min(setup.spawn_product_count, len(setup_markets))
            for market in self.rng.sample(setup_markets, count):
                product = Product(
                    owner_name=name,
                    market_name=market.name,
                    assigned_employees=dict(spawn.seed_assignment),
                    revenue=spawn.seed_revenue_per_product,
                )
                company.employees += sum(spawn.seed_assignment.values())
                self._siphon_from_leader(market.name, spawn.seed_revenue_per_product)
                company.products[self.names.product_name(self.used_product_names)] = product

            self.ai_companies.append(company)
            self.spawned_company_count += 1
            spawned.append(company)
            ctx.emit_public_news(f"NEW COMPETITOR ALERT! {name} COMPANY SIZE: {tier}")
            logger.info("spawned %s company %s", tier, name)
        ctx.invalidate_ranks()
        return spawned

    def _siphon_from_leader(self, market_name: str, amount: float) -> None:
        leader = None
        for company in [*self.ai_companies, self.player]:
            for product in company.products.values():
                if product.market_name != market_name:
                    continue
                if product.revenue > (leader.revenue if leader else 0.0):
                    leader = product
        if leader is not None:
            leader.revenue -= min(leader.revenue, amount)

    def spawn_market(self, ctx: TurnContext) -> Optional[Market]:
        """Open the next market from the fixed list, seeded with an imaginary product."""
        config = CONFIG.markets
        if self.spawned_market_count >= len(config.spawn_market_names):
            return None

        name = config.spawn_market_names[self.spawned_market_count]
        size = self.rng.uniform(config.spawn_size_min, config.spawn_size_max)
        growth = self.rng.uniform(config.spawn_growth_min, config.spawn_growth_max)
        market = Market(name=name, size=size, base_growth_rate=growth)
        market.imaginary_product = Product(
            owner_name=config.imaginary_owner_name, market_name=name, revenue=size,
        )
        self.markets.append(market)
        self.spawned_market_count += 1
        ctx.invalidate_ranks()

        ctx.emit_public_news(
            f"NEW PRODUCT MARKET! {name} SIZE: ~${int(size):,} GROWTH: {growth_label(growth)}"
        )
        logger.info("spawned market %s", name)
        return market

    # --- Snapshot ---

    def to_dict(self) -> Dict[str, object]:
        """Full engine state as plain Python types."""
        return {
            "turn": self.turn,
            "start_year": self.start_year,
            "game_over": self.game_over,
            "outcome": self.outcome,
            "player_founded": self.player_founded,
            "initial_shares_assigned": self.initial_shares_assigned,
            "player": self.player.to_dict(),
            "ai_companies": [c.to_dict() for c in self.ai_companies],
            "markets": [m.to_dict() for m in self.markets],
            "spawned_company_count": self.spawned_company_count,
            "spawned_market_count": self.spawned_market_count,
            "used_company_names": sorted(self.used_company_names),
            "used_product_names": sorted(self.used_product_names),
            "pending_acquisitions": [p.to_dict() for p in self.pending_acquisitions],
            "competitor_news": list(self.competitor_news),
            "public_news": list(self.public_news),
            "events": self.event_manager.to_dict(),
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, object],
        rng: Optional[random.Random] = None,
        seed: Optional[int] = None,
        snapshot_sink: Optional[SnapshotSink] = None,
    ) -> "Economy":
        """
        Rebuild an engine from to_dict() output.

        Pending acquisitions whose buyer is no longer present are dropped;
        any other missing or malformed field raises SnapshotError.
        """
        if not isinstance(data, dict):
            raise SnapshotError("snapshot must be a mapping")
        try:
            economy = cls(rng=rng, seed=seed, start_year=int(data["start_year"]),
                          snapshot_sink=snapshot_sink, setup=False)
            economy.turn = int(data["turn"])
            economy.game_over = bool(data["game_over"])
            economy.outcome = data["outcome"]
            economy.player_founded = bool(data["player_founded"])
            economy.initial_shares_assigned = bool(data["initial_shares_assigned"])

            economy.markets = [Market.from_dict(m) for m in data["markets"]]
            economy.player = Company.from_dict(data["player"])
            economy.ai_companies = [Company.from_dict(c) for c in data["ai_companies"]]

            economy.spawned_company_count = int(data["spawned_company_count"])
            economy.spawned_market_count = int(data["spawned_market_count"])
            economy.used_company_names = set(data["used_company_names"])
            economy.used_product_names = set(data["used_product_names"])
            economy.competitor_news.extend(data["competitor_news"])
            economy.public_news.extend(data["public_news"])
            events = data["events"]
            pending_data = data["pending_acquisitions"]
        except SnapshotError:
            raise
        except (KeyError, TypeError, ValueError) as exc:
            raise SnapshotError(f"snapshot is missing or has a malformed field: {exc}") from exc

        if economy.player.tier is not None:
            raise SnapshotError("player company must not have a tier")
        for company in economy.ai_companies:
            if company.tier is None:
                raise SnapshotError(f"AI company {company.name} has no tier")

        markets_by_name = {m.name: m for m in economy.markets}
        economy.event_manager = EventManager.from_dict(
            events, markets_by_name, economy.rng, economy.start_year
        )

        companies = {c.name: c for c in economy.all_companies()}
        for item in pending_data:
            try:
                buyer_name = item["buyer_name"]
                pending = PendingAcquisition(
                    buyer=companies.get(buyer_name),
                    target_name=item["target_name"],
                    price=float(item["price"]),
                    turn_submitted=int(item["turn_submitted"]),
                )
            except (KeyError, TypeError, ValueError) as exc:
                raise SnapshotError(f"pending acquisition is malformed: {exc}") from exc
            if pending.buyer is None:
                logger.warning("dropping pending acquisition of %s: buyer %s is gone",
                               pending.target_name, buyer_name)
                continue
            economy.pending_acquisitions.append(pending)

        return economy


def growth_label(growth_rate: float) -> str:
    """Headline label for a spawned market's growth rate."""
    if growth_rate <= 0.11:
        return "Moderate"
    if growth_rate <= 0.13:
        return "Good"
    return "Very Good"
