"""
Technopoly Entity Model

Mutable entities that carry quarter-to-quarter state: markets, products,
companies and their debt instruments. Every entity serializes to plain
Python types with to_dict() and is rebuilt with from_dict(); restoration is
strict and raises SnapshotError rather than silently defaulting, since a
wrong default would desynchronize later financial formulas.
"""

import math
import random
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from config import CONFIG, CampusType

CATEGORIES: Tuple[str, ...] = ("r&d", "q&a", "marketing")
QUALITY_RANKS: Tuple[str, ...] = ("Very Bad", "Bad", "Moderate", "Good", "Very Good")


class SnapshotError(ValueError):
    """Persisted state is malformed and cannot be restored."""


class BoundedHistory:
    """
    Fixed-size rolling window backed by a deque.

    Appending to a full window evicts the oldest entry.
    """

    __slots__ = ("_items",)

    def __init__(self, maxlen: int, items=()):
        if maxlen <= 0:
            raise ValueError(f"maxlen must be positive, got {maxlen}")
        self._items = deque(items, maxlen=maxlen)

    @property
    def maxlen(self) -> int:
        return self._items.maxlen

    def append(self, value) -> None:
        self._items.append(value)

    def latest(self, default=None):
        return self._items[-1] if self._items else default

    def average(self, default: float = 0.0) -> float:
        if not self._items:
            return default
        return sum(self._items) / len(self._items)

    def to_list(self) -> list:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator:
        return iter(self._items)

    def __eq__(self, other) -> bool:
        if isinstance(other, BoundedHistory):
            return self.maxlen == other.maxlen and list(self._items) == list(other._items)
        if isinstance(other, list):
            return list(self._items) == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"BoundedHistory({list(self._items)!r}, maxlen={self.maxlen})"


# --- Snapshot field readers ---

def _field(data: dict, key: str, entity: str):
    if not isinstance(data, dict):
        raise SnapshotError(f"{entity}: expected a mapping, got {type(data).__name__}")
    if key not in data:
        raise SnapshotError(f"{entity}: missing field '{key}'")
    return data[key]


def _number(data: dict, key: str, entity: str) -> float:
    value = _field(data, key, entity)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        raise SnapshotError(f"{entity}: field '{key}' must be a number, got {value!r}")
    return float(value)


def _integer(data: dict, key: str, entity: str) -> int:
    value = _field(data, key, entity)
    if isinstance(value, bool) or not isinstance(value, int):
        if isinstance(value, float) and value.is_integer():
            return int(value)
        raise SnapshotError(f"{entity}: field '{key}' must be an integer, got {value!r}")
    return value


def _string(data: dict, key: str, entity: str) -> str:
    value = _field(data, key, entity)
    if not isinstance(value, str):
        raise SnapshotError(f"{entity}: field '{key}' must be a string, got {value!r}")
    return value


def _numbers(data: dict, key: str, entity: str) -> List[float]:
    value = _field(data, key, entity)
    if not isinstance(value, list):
        raise SnapshotError(f"{entity}: field '{key}' must be a list")
    out = []
    for item in value:
        if isinstance(item, bool) or not isinstance(item, (int, float)):
            raise SnapshotError(f"{entity}: field '{key}' holds a non-numeric entry {item!r}")
        out.append(float(item))
    return out


def _category_map(data: dict, key: str, entity: str, cast) -> Dict[str, float]:
    value = _field(data, key, entity)
    if not isinstance(value, dict):
        raise SnapshotError(f"{entity}: field '{key}' must be a mapping")
    result = {}
    for category in CATEGORIES:
        if category not in value:
            raise SnapshotError(f"{entity}: field '{key}' is missing '{category}'")
        item = value[category]
        if isinstance(item, bool) or not isinstance(item, (int, float)):
            raise SnapshotError(f"{entity}: {key}['{category}'] must be a number, got {item!r}")
        result[category] = cast(item)
    return result


# --- Campuses ---

def campus_to_dict(campus: CampusType) -> Dict[str, object]:
    return {
        "name": campus.name,
        "cost": campus.cost,
        "overhead": campus.overhead,
        "capacity": None if math.isinf(campus.capacity) else campus.capacity,
    }


def campus_from_dict(data: dict) -> CampusType:
    entity = "campus"
    capacity = _field(data, "capacity", entity)
    if capacity is None:
        capacity = math.inf
    elif isinstance(capacity, bool) or not isinstance(capacity, (int, float)):
        raise SnapshotError(f"{entity}: field 'capacity' must be a number or null, got {capacity!r}")
    return CampusType(
        name=_string(data, "name", entity),
        cost=_number(data, "cost", entity),
        overhead=_number(data, "overhead", entity),
        capacity=capacity,
    )


# --- Debt instruments ---

def amortized_payment(principal: float, annual_rate: float, term_months: int) -> float:
    """Standard fixed monthly payment for a fully amortizing loan."""
    if term_months <= 0:
        return 0.0
    monthly_rate = annual_rate / 12.0
    if monthly_rate == 0:
        return principal / term_months
    return (monthly_rate * principal) / (1.0 - (1.0 + monthly_rate) ** (-term_months))


@dataclass(slots=True, eq=False)
class Loan:
    """
    A loan taken by a company.

    The monthly payment is fixed at origination; the origination principal and
    term are kept so the payment can be re-derived identically after a restore.
    """

    principal: float
    annual_rate: float
    term_remaining_months: int
    original_principal: Optional[float] = None
    original_term_months: Optional[int] = None
    monthly_payment: float = field(init=False, default=0.0)

    def __post_init__(self):
        if self.principal < 0:
            raise ValueError(f"loan principal cannot be negative, got {self.principal}")
        if self.annual_rate < 0:
            raise ValueError(f"loan rate cannot be negative, got {self.annual_rate}")
        if self.original_principal is None:
            self.original_principal = self.principal
        if self.original_term_months is None:
            self.original_term_months = self.term_remaining_months
        self.monthly_payment = amortized_payment(
            self.original_principal, self.annual_rate, self.original_term_months
        )

    def monthly_interest(self) -> float:
        return self.principal * self.annual_rate / 12.0

    def to_dict(self) -> Dict[str, object]:
        return {
            "principal": self.principal,
            "annual_rate": self.annual_rate,
            "term_remaining_months": self.term_remaining_months,
            "original_principal": self.original_principal,
            "original_term_months": self.original_term_months,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Loan":
        entity = "loan"
        try:
            return cls(
                principal=_number(data, "principal", entity),
                annual_rate=_number(data, "annual_rate", entity),
                term_remaining_months=_integer(data, "term_remaining_months", entity),
                original_principal=_number(data, "original_principal", entity),
                original_term_months=_integer(data, "original_term_months", entity),
            )
        except ValueError as exc:
            if isinstance(exc, SnapshotError):
                raise
            raise SnapshotError(f"{entity}: {exc}") from exc


@dataclass(slots=True, eq=False)
class Bond:
    """A bond paying quarterly interest; principal comes back at term end."""

    principal: float
    annual_rate: float
    term_quarters: int
    term_remaining: Optional[int] = None

    def __post_init__(self):
        if self.principal < 0:
            raise ValueError(f"bond principal cannot be negative, got {self.principal}")
        if self.term_quarters <= 0:
            raise ValueError(f"bond term must be positive, got {self.term_quarters}")
        if self.term_remaining is None:
            self.term_remaining = self.term_quarters

    def quarterly_interest(self) -> float:
        return self.principal * (self.annual_rate / 4.0)

    def to_dict(self) -> Dict[str, object]:
        return {
            "principal": self.principal,
            "annual_rate": self.annual_rate,
            "term_quarters": self.term_quarters,
            "term_remaining": self.term_remaining,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Bond":
        entity = "bond"
        try:
            return cls(
                principal=_number(data, "principal", entity),
                annual_rate=_number(data, "annual_rate", entity),
                term_quarters=_integer(data, "term_quarters", entity),
                term_remaining=_integer(data, "term_remaining", entity),
            )
        except ValueError as exc:
            if isinstance(exc, SnapshotError):
                raise
            raise SnapshotError(f"{entity}: {exc}") from exc


# --- Products ---

def _zero_assignment() -> Dict[str, int]:
    return {category: 0 for category in CATEGORIES}


def _zero_spend() -> Dict[str, float]:
    return {category: 0.0 for category in CATEGORIES}


def _growth_history() -> BoundedHistory:
    return BoundedHistory(CONFIG.markets.growth_history_length)


@dataclass(slots=True, eq=False)
class Product:
    """
    A company's offering in one market.

    Effective spend trails actual spend (25k per assigned employee) with a
    per-function delay, and effectiveness is the weighted effective spend per
    dollar of revenue. Effectiveness drives both quality rank and revenue share.
    """

    owner_name: str
    market_name: str
    assigned_employees: Dict[str, int] = field(default_factory=_zero_assignment)
    effective_spend: Dict[str, float] = field(default_factory=_zero_spend)
    effectiveness: float = 0.0
    revenue: float = 0.0
    recent_growth: BoundedHistory = field(default_factory=_growth_history)

    def __post_init__(self):
        """Validate invariants after initialization."""
        for category in CATEGORIES:
            self.assigned_employees.setdefault(category, 0)
            self.effective_spend.setdefault(category, 0.0)
        for category, count in self.assigned_employees.items():
            if category not in CATEGORIES:
                raise ValueError(f"unknown department '{category}'")
            if count < 0:
                raise ValueError(f"assigned employees for {category} cannot be negative, got {count}")
        if not isinstance(self.recent_growth, BoundedHistory):
            self.recent_growth = BoundedHistory(
                CONFIG.markets.growth_history_length, self.recent_growth
            )

    def total_assigned(self) -> int:
        return sum(self.assigned_employees.values())

    def spend_for(self, category: str) -> float:
        return self.assigned_employees[category] * CONFIG.finance.employee_cost_per_quarter

    def total_spend_this_quarter(self) -> float:
        return sum(self.spend_for(category) for category in CATEGORIES)

    def update_effective_spend(self) -> None:
        """Move each function's effective spend a 1/delay step toward actual spend."""
        delays = CONFIG.markets.effectiveness_delays
        for category in CATEGORIES:
            previous = self.effective_spend[category]
            actual = self.spend_for(category)
            self.effective_spend[category] = previous + (actual - previous) / delays[category]

    def update_effectiveness(self) -> None:
        weights = CONFIG.markets.effectiveness_weights
        weighted = sum(weights[c] * self.effective_spend[c] for c in CATEGORIES)
        self.effectiveness = weighted / max(self.revenue, 1.0)

    def record_growth(self, growth_pct: float) -> None:
        self.recent_growth.append(growth_pct)

    def last_growth(self) -> Optional[float]:
        return self.recent_growth.latest()

    def to_dict(self) -> Dict[str, object]:
        return {
            "owner_name": self.owner_name,
            "market_name": self.market_name,
            "assigned_employees": dict(self.assigned_employees),
            "effective_spend": dict(self.effective_spend),
            "effectiveness": self.effectiveness,
            "revenue": self.revenue,
            "recent_growth": self.recent_growth.to_list(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Product":
        entity = "product"
        owner = _string(data, "owner_name", entity)
        entity = f"product of {owner}"
        try:
            return cls(
                owner_name=owner,
                market_name=_string(data, "market_name", entity),
                assigned_employees=_category_map(data, "assigned_employees", entity, int),
                effective_spend=_category_map(data, "effective_spend", entity, float),
                effectiveness=_number(data, "effectiveness", entity),
                revenue=_number(data, "revenue", entity),
                recent_growth=BoundedHistory(
                    CONFIG.markets.growth_history_length,
                    _numbers(data, "recent_growth", entity),
                ),
            )
        except ValueError as exc:
            if isinstance(exc, SnapshotError):
                raise
            raise SnapshotError(f"{entity}: {exc}") from exc


# --- Companies ---

def _profit_history() -> BoundedHistory:
    return BoundedHistory(CONFIG.finance.revenue_history_length)


@dataclass(slots=True, eq=False)
class Company:
    """
    A competing company: the human player (tier None) or an AI of a given tier.

    Owns its products, loans, bonds and campuses exclusively.
    """

    name: str
    tier: Optional[str] = None
    cash: float = 0.0
    employees: int = 0
    campuses: List[CampusType] = field(default_factory=list)
    loans: List[Loan] = field(default_factory=list)
    bonds: List[Bond] = field(default_factory=list)
    products: Dict[str, Product] = field(default_factory=dict)
    market_cap: float = 0.0
    debt_monthly_payment: float = 0.0  # fixed debt service outside the loan book
    past_quarter_profits: BoundedHistory = field(default_factory=_profit_history)
    past_quarter_revenues: BoundedHistory = field(default_factory=_profit_history)
    negative_cash_quarters: int = 0
    last_acquisition_turn: int = -100

    def __post_init__(self):
        if self.employees < 0:
            raise ValueError(f"employees cannot be negative, got {self.employees}")
        if self.tier is not None and self.tier not in CONFIG.ai.tiers:
            raise ValueError(f"unknown tier '{self.tier}'")

    @property
    def is_player(self) -> bool:
        return self.tier is None

    def employee_capacity(self) -> float:
        return sum(c.capacity for c in self.campuses)

    def remaining_capacity(self) -> float:
        return self.employee_capacity() - self.employees

    def overhead_percent(self) -> float:
        if not self.campuses:
            return 0.0
        return max(c.overhead for c in self.campuses)

    def total_revenue_this_quarter(self) -> float:
        return sum(p.revenue for p in self.products.values())

    def total_spending_this_quarter(self) -> float:
        employee_base = self.employees * CONFIG.finance.employee_cost_per_quarter
        overhead = employee_base * self.overhead_percent()
        debt_cost = self.debt_monthly_payment * CONFIG.time.months_per_quarter
        return employee_base + overhead + debt_cost

    def quarterly_profit(self) -> float:
        return self.total_revenue_this_quarter() - self.total_spending_this_quarter()

    def total_assigned(self) -> int:
        return sum(p.total_assigned() for p in self.products.values())

    def has_product_in(self, market_name: str) -> bool:
        return any(p.market_name == market_name for p in self.products.values())

    def update_negative_cash_quarters(self) -> None:
        if self.cash < 0:
            self.negative_cash_quarters += 1
        else:
            self.negative_cash_quarters = 0

    def is_bankrupt(self) -> bool:
        return self.negative_cash_quarters >= CONFIG.ai.bankruptcy_quarters

    def is_growth_protected(self) -> bool:
        """True when any product grew more than the protection threshold last quarter."""
        threshold = CONFIG.markets.growth_protection_pct
        return any(
            p.last_growth() is not None and p.last_growth() > threshold
            for p in self.products.values()
        )

    def unique_product_name(self, name: str) -> str:
        """Return name, suffixed with '_acq' until it no longer collides."""
        while name in self.products:
            name = f"{name}_acq"
        return name

    def unassign_employees(self, count: int) -> int:
        """
        Strip up to count assignments, weakest products first.

        Within a product marketing goes first, then q&a, then r&d.

        Returns:
            Number of assignments released
        """
        remaining = count
        ranked = sorted(self.products.values(), key=lambda p: p.effectiveness)
        for product in ranked:
            if remaining <= 0:
                break
            for category in ("marketing", "q&a", "r&d"):
                if remaining <= 0:
                    break
                taken = min(product.assigned_employees[category], remaining)
                product.assigned_employees[category] -= taken
                remaining -= taken
        return count - remaining

    def absorb(self, target: "Company") -> None:
        """
        Merge target into this company and leave target as an empty shell.

        Negative target cash is written off before transfer. Products keep
        their names unless they collide, in which case they get an '_acq'
        suffix.
        """
        if target.cash < 0:
            target.cash = 0.0

        self.cash += target.cash
        self.employees += target.employees
        self.campuses.extend(target.campuses)
        self.loans.extend(target.loans)
        self.bonds.extend(target.bonds)
        for product_name, product in target.products.items():
            product.owner_name = self.name
            self.products[self.unique_product_name(product_name)] = product

        target.cash = 0.0
        target.employees = 0
        target.campuses = []
        target.products = {}
        target.loans = []
        target.bonds = []

    def to_dict(self) -> Dict[str, object]:
        """
        Serialize all fields to basic Python types.

        Returns:
            Dictionary representation of the company state
        """
        return {
            "name": self.name,
            "tier": self.tier,
            "cash": self.cash,
            "employees": self.employees,
            "campuses": [campus_to_dict(c) for c in self.campuses],
            "loans": [loan.to_dict() for loan in self.loans],
            "bonds": [bond.to_dict() for bond in self.bonds],
            "products": {name: p.to_dict() for name, p in self.products.items()},
            "market_cap": self.market_cap,
            "debt_monthly_payment": self.debt_monthly_payment,
            "past_quarter_profits": self.past_quarter_profits.to_list(),
            "past_quarter_revenues": self.past_quarter_revenues.to_list(),
            "negative_cash_quarters": self.negative_cash_quarters,
            "last_acquisition_turn": self.last_acquisition_turn,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Company":
        name = _string(data, "name", "company")
        entity = f"company {name}"
        tier = _field(data, "tier", entity)
        if tier is not None and not isinstance(tier, str):
            raise SnapshotError(f"{entity}: field 'tier' must be a string or null")

        products_data = _field(data, "products", entity)
        if not isinstance(products_data, dict):
            raise SnapshotError(f"{entity}: field 'products' must be a mapping")
        history_len = CONFIG.finance.revenue_history_length
        try:
            return cls(
                name=name,
                tier=tier,
                cash=_number(data, "cash", entity),
                employees=_integer(data, "employees", entity),
                campuses=[campus_from_dict(c) for c in _field(data, "campuses", entity)],
                loans=[Loan.from_dict(item) for item in _field(data, "loans", entity)],
                bonds=[Bond.from_dict(item) for item in _field(data, "bonds", entity)],
                products={
                    pname: Product.from_dict(pdata) for pname, pdata in products_data.items()
                },
                market_cap=_number(data, "market_cap", entity),
                debt_monthly_payment=_number(data, "debt_monthly_payment", entity),
                past_quarter_profits=BoundedHistory(
                    history_len, _numbers(data, "past_quarter_profits", entity)
                ),
                past_quarter_revenues=BoundedHistory(
                    history_len, _numbers(data, "past_quarter_revenues", entity)
                ),
                negative_cash_quarters=_integer(data, "negative_cash_quarters", entity),
                last_acquisition_turn=_integer(data, "last_acquisition_turn", entity),
            )
        except ValueError as exc:
            if isinstance(exc, SnapshotError):
                raise
            raise SnapshotError(f"{entity}: {exc}") from exc


# --- Markets ---

@dataclass(slots=True, eq=False)
class Market:
    """
    A product market.

    growth_rate is the base rate plus at most one event modifier; it is reset
    to base_growth_rate before each new non-breaking event.
    """

    name: str
    size: float
    base_growth_rate: float
    growth_rate: Optional[float] = None
    is_in_recession: bool = False
    recession_quarters_left: int = 0
    last_quarter_total_revenue: float = 0.0
    imaginary_product: Optional[Product] = None

    def __post_init__(self):
        if self.size < 0:
            raise ValueError(f"market size cannot be negative, got {self.size}")
        if self.growth_rate is None:
            self.growth_rate = self.base_growth_rate

    @classmethod
    def random(cls, name: str, rng: random.Random,
               size_range: Optional[Tuple[float, float]] = None,
               growth_range: Optional[Tuple[float, float]] = None) -> "Market":
        config = CONFIG.markets
        low, high = size_range or (config.initial_size_min, config.initial_size_max)
        g_low, g_high = growth_range or (config.initial_growth_min, config.initial_growth_max)
        return cls(name=name, size=float(rng.randint(int(low), int(high))),
                   base_growth_rate=rng.uniform(g_low, g_high))

    def reset_growth_rate(self) -> None:
        self.growth_rate = self.base_growth_rate

    def enter_recession(self, quarters: int) -> None:
        self.is_in_recession = True
        self.recession_quarters_left = quarters

    def clear_recession(self) -> None:
        self.is_in_recession = False
        self.recession_quarters_left = 0

    def apply_recession(self) -> None:
        """Shrink by the recession factor and count down; self-clears at zero."""
        if self.is_in_recession and self.recession_quarters_left > 0:
            self.size *= CONFIG.markets.recession_shrink_factor
            self.recession_quarters_left -= 1
            if self.recession_quarters_left <= 0:
                self.clear_recession()

    def growth_category(self) -> str:
        if self.growth_rate <= 0.083:
            return "Low"
        if self.growth_rate <= 0.1166:
            return "Moderate"
        return "High"

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "size": self.size,
            "base_growth_rate": self.base_growth_rate,
            "growth_rate": self.growth_rate,
            "is_in_recession": self.is_in_recession,
            "recession_quarters_left": self.recession_quarters_left,
            "last_quarter_total_revenue": self.last_quarter_total_revenue,
            "imaginary_product": (
                self.imaginary_product.to_dict() if self.imaginary_product else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Market":
        name = _string(data, "name", "market")
        entity = f"market {name}"
        recession = _field(data, "is_in_recession", entity)
        if not isinstance(recession, bool):
            raise SnapshotError(f"{entity}: field 'is_in_recession' must be a boolean")
        imaginary = _field(data, "imaginary_product", entity)
        try:
            return cls(
                name=name,
                size=_number(data, "size", entity),
                base_growth_rate=_number(data, "base_growth_rate", entity),
                growth_rate=_number(data, "growth_rate", entity),
                is_in_recession=recession,
                recession_quarters_left=_integer(data, "recession_quarters_left", entity),
                last_quarter_total_revenue=_number(data, "last_quarter_total_revenue", entity),
                imaginary_product=Product.from_dict(imaginary) if imaginary is not None else None,
            )
        except ValueError as exc:
            if isinstance(exc, SnapshotError):
                raise
            raise SnapshotError(f"{entity}: {exc}") from exc


# --- Events and pending deals ---

@dataclass(slots=True)
class GameEvent:
    """A market shock. Only the global recession is breaking."""

    name: str
    description: str
    is_breaking: bool = False
    market_name: Optional[str] = None
    growth_modifier: float = 0.0
    turn_happened: Optional[int] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "description": self.description,
            "is_breaking": self.is_breaking,
            "market_name": self.market_name,
            "growth_modifier": self.growth_modifier,
            "turn_happened": self.turn_happened,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GameEvent":
        entity = "event"
        turn = _field(data, "turn_happened", entity)
        market_name = _field(data, "market_name", entity)
        return cls(
            name=_string(data, "name", entity),
            description=_string(data, "description", entity),
            is_breaking=bool(_field(data, "is_breaking", entity)),
            market_name=market_name,
            growth_modifier=_number(data, "growth_modifier", entity),
            turn_happened=None if turn is None else _integer(data, "turn_happened", entity),
        )


@dataclass(slots=True)
class PendingAcquisition:
    """A takeover offer waiting one turn before it is resolved."""

    buyer: Company
    target_name: str
    price: float
    turn_submitted: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "buyer_name": self.buyer.name,
            "target_name": self.target_name,
            "price": self.price,
            "turn_submitted": self.turn_submitted,
        }
