"""
Market Events and Global Recession

Each quarter, outside a recession, one of 2N+1 equally likely events fires:
a +/-5% growth shock for each of the N setup markets, or the breaking Global
Recession. A recession suppresses all draws until its countdown expires.
"""

import copy
import logging
import random
from collections import deque
from typing import Dict, List, Optional

from config import CONFIG
from models import GameEvent, Market, SnapshotError

logger = logging.getLogger(__name__)

RECESSION_NAME = "Global Recession"


class EventManager:
    """
    Picks, applies and ages market events.

    Holds only the markets that existed at setup; markets spawned later are
    never targeted by events or recessions.
    """

    def __init__(self, markets: List[Market], rng: random.Random,
                 start_year: Optional[int] = None):
        self.markets = list(markets)
        self.rng = rng
        self.start_year = CONFIG.time.start_year if start_year is None else start_year
        self.recent_events: deque = deque(maxlen=CONFIG.markets.recent_events_kept)
        self.recession_active = False
        self.recession_quarters_left = 0

        modifier = CONFIG.markets.event_growth_modifier
        pct = int(round(modifier * 100))
        self.normal_events: List[GameEvent] = []
        for market in self.markets:
            self.normal_events.append(GameEvent(
                name=f"Strong demand for {market.name}",
                description=f"+{pct}% growth this quarter in {market.name}",
                market_name=market.name,
                growth_modifier=modifier,
            ))
            self.normal_events.append(GameEvent(
                name=f"Weak demand for {market.name}",
                description=f"-{pct}% growth this quarter in {market.name}",
                market_name=market.name,
                growth_modifier=-modifier,
            ))
        self.recession_event = GameEvent(
            name=RECESSION_NAME,
            description=(f"ALL markets freeze growth and shrink 5% each quarter for "
                         f"{CONFIG.markets.recession_quarters} quarters"),
            is_breaking=True,
        )

    def pick_random_event(self) -> Optional[GameEvent]:
        """Draw uniformly over every normal event plus the recession; None while in recession."""
        if self.recession_active:
            return None
        slots = len(self.normal_events) + 1
        draw = self.rng.randrange(slots)
        if draw == slots - 1:
            return self.recession_event
        return self.normal_events[draw]

    def apply_event(self, event: Optional[GameEvent], turn: Optional[int] = None) -> None:
        if event is None:
            return

        record = copy.copy(event)
        if turn is not None:
            record.turn_happened = turn
        self.recent_events.append(record)

        if event.is_breaking:
            quarters = CONFIG.markets.recession_quarters
            self.recession_active = True
            self.recession_quarters_left = quarters
            for market in self.markets:
                market.enter_recession(quarters)
            logger.info("global recession started for %d quarters", quarters)
            return

        # Modifiers never stack: every market goes back to base first
        for market in self.markets:
            market.reset_growth_rate()
        for market in self.markets:
            if market.name == event.market_name:
                market.growth_rate = max(0.0, market.growth_rate + event.growth_modifier)

    def update_recession(self) -> None:
        if not self.recession_active:
            return
        self.recession_quarters_left -= 1
        if self.recession_quarters_left <= 0:
            self.recession_active = False
            self.recession_quarters_left = 0
            for market in self.markets:
                market.clear_recession()
            logger.info("global recession ended")

    def format_news_feed(self, current_year: int, current_quarter: int) -> List[str]:
        """Newest-first display lines for the retained events."""
        lines = []
        for event in reversed(self.recent_events):
            if event.turn_happened is not None:
                year, quarter = CONFIG.quarter_label(event.turn_happened, self.start_year)
            else:
                year, quarter = current_year, current_quarter
            if event.is_breaking:
                lines.append(f"{year}, Q{quarter} - {RECESSION_NAME} "
                             f"(remaining {self.recession_quarters_left} quarters)")
            else:
                lines.append(f"{year}, Q{quarter}: {event.name}, {event.description}")
        return lines

    def to_dict(self) -> Dict[str, object]:
        return {
            "market_names": [m.name for m in self.markets],
            "recent_events": [e.to_dict() for e in self.recent_events],
            "recession_active": self.recession_active,
            "recession_quarters_left": self.recession_quarters_left,
        }

    @classmethod
    def from_dict(cls, data: dict, markets_by_name: Dict[str, Market],
                  rng: random.Random, start_year: Optional[int] = None) -> "EventManager":
        try:
            names = data["market_names"]
            events = data["recent_events"]
            active = data["recession_active"]
            left = data["recession_quarters_left"]
        except (KeyError, TypeError) as exc:
            raise SnapshotError(f"event state: missing field {exc}") from exc

        missing = [name for name in names if name not in markets_by_name]
        if missing:
            raise SnapshotError(f"event state references unknown markets: {missing}")

        manager = cls([markets_by_name[name] for name in names], rng, start_year)
        for item in events:
            manager.recent_events.append(GameEvent.from_dict(item))
        manager.recession_active = bool(active)
        manager.recession_quarters_left = int(left)
        return manager
