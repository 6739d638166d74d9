"""
Simulation Configuration

Centralizes all tunable parameters for the quarterly business simulation.
This replaces scattered "magic numbers" throughout the codebase.
"""

import logging
import math
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from dotenv import load_dotenv


@dataclass(frozen=True)
class CampusType:
    """A purchasable campus: price, overhead fraction on salaries, and headcount capacity."""
    name: str
    cost: float
    overhead: float
    capacity: float  # math.inf for unlimited


@dataclass
class TimeConfig:
    """Time-related constants."""
    start_year: int = 2000
    quarters_per_year: int = 4
    months_per_quarter: int = 3


@dataclass
class FinanceConfig:
    """Salary, debt and valuation constants."""

    # Payroll
    employee_cost_per_quarter: float = 25000.0
    ai_severance_per_employee: float = 20000.0

    # Valuation
    revenue_history_length: int = 3
    acquisition_premium: float = 1.3

    # AI borrowing
    ai_loan_revenue_multiple: float = 4.0  # max loan = 4x quarterly revenue
    ai_loan_base_rate: float = 0.09  # 6% base rate marked up 50%
    ai_loan_rate_step: float = 0.01  # per existing loan
    ai_loan_term_months: int = 60
    ai_min_loan: float = 100000.0

    # AI bond investing
    ai_bond_investment_fraction: float = 0.25
    ai_min_bond_investment: float = 100000.0

    # Liquidity ratio used when a company has no revenue
    default_liquidity_ratio: float = 10.0


@dataclass
class MarketConfig:
    """Market sizing, churn, and product effectiveness parameters."""

    initial_market_names: List[str] = field(default_factory=lambda: [
        "Artificial Intelligence", "Cloud Computing", "Cybersecurity", "Enterprise SaaS",
        "E-Commerce", "Consumer Hardware", "FinTech", "Social Media",
    ])
    spawn_market_names: List[str] = field(default_factory=lambda: [
        "Semiconductors", "Autonomous Vehicles", "Blockchain", "Telecommunications",
        "VR Software", "Cloud Gaming", "Quantum Computing", "Smart Home",
        "Streaming Platforms", "GreenTech", "Wearables", "Video Games",
    ])

    # Initial markets
    initial_size_min: float = 25_000_000.0
    initial_size_max: float = 50_000_000.0
    initial_growth_min: float = 0.05
    initial_growth_max: float = 0.15

    # Spawned markets
    spawn_size_min: float = 500_000.0
    spawn_size_max: float = 5_000_000.0
    spawn_growth_min: float = 0.10
    spawn_growth_max: float = 0.15
    imaginary_owner_name: str = "Initial Market Revenue"

    # Quarterly redistribution
    churn_rate: float = 0.08

    # Recession
    recession_quarters: int = 3
    recession_shrink_factor: float = 0.95

    # Event modifiers
    event_growth_modifier: float = 0.05
    recent_events_kept: int = 5

    # Product effectiveness (exponential smoothing delay per function)
    effectiveness_delays: Dict[str, float] = field(default_factory=lambda: {
        "r&d": 5.0, "q&a": 3.0, "marketing": 1.0,
    })
    effectiveness_weights: Dict[str, float] = field(default_factory=lambda: {
        "r&d": 0.5, "q&a": 0.3, "marketing": 0.2,
    })
    growth_history_length: int = 4
    growth_protection_pct: float = 30.0  # last-quarter growth that vetoes takeovers

    # New product entry (AI)
    entry_cost_size_fraction: float = 0.05  # entry cost = size * 0.05 * 4
    entry_cost_quarters: float = 4.0
    entry_effectiveness_discount: float = 0.4
    entry_revenue_siphon: float = 10000.0


@dataclass(frozen=True)
class TierPolicy:
    """
    Decision constants for one AI tier.

    One shared routine in ai.AIController consumes these, so the four tiers
    only differ in numbers.
    """
    name: str

    # Staffing
    target_cost_ratio: float  # employee cost as a fraction of quarterly revenue
    hire_cash_buffer: float  # hire only while cash > revenue * buffer
    fire_trigger: float  # fire when employees > target * trigger and losing money

    # Campus expansion
    campus_slack: float  # expand when free capacity < slack * capacity
    campus_cash_floor: float
    campus_rank: int  # index into the cost-sorted affordable catalogue (negative = from top)

    # Liquidity
    loan_liquidity_threshold: float
    loan_emergency: bool  # borrow the full 4x revenue instead of half
    loan_when_cash_negative: bool = False
    loan_min_negative_quarters: int = 0
    loan_market_cap_fraction: Optional[float] = None  # only borrow while cash < cap * fraction

    # New products
    entry_cash_multiple: float = 2.0
    entry_cash_fraction: float = 0.25

    # Acquisitions
    acquisition_ranks: Tuple[str, ...] = ()

    # Bonds
    bond_revenue_multiple: float = 1.5
    bond_cash_floor: float = 1_000_000.0
    bond_probability: float = 0.0
    bond_term_quarters: int = 4
    bond_rate: float = 0.07


@dataclass(frozen=True)
class TierSetup:
    """Starting endowment for AI companies of one tier."""
    name: str
    initial_count: int
    initial_market_count: int
    initial_campus: CampusType
    initial_employee_range: Tuple[int, int]
    initial_cash_range: Tuple[float, float]
    spawn_campus: CampusType
    spawn_employee_range: Tuple[int, int]
    spawn_cash_range: Tuple[float, float]
    spawn_product_count: int
    share_ratio: int  # weight in the opening market-share split


def _default_campus_catalog() -> List[CampusType]:
    return [
        CampusType("Garage", 100000.0, 0.0, 10),
        CampusType("Small Office", 400000.0, 0.02, 50),
        CampusType("Large Office", 1000000.0, 0.04, 150),
        CampusType("Large Building", 1600000.0, 0.08, 275),
        CampusType("Small HQ Campus", 2750000.0, 0.10, 500),
        CampusType("Large HQ Campus", 5500000.0, 0.12, 1000),
        CampusType("Large Campus Park", 25000000.0, 0.15, math.inf),
    ]


def _default_tier_policies() -> Dict[str, TierPolicy]:
    return {
        "Startup": TierPolicy(
            name="Startup",
            target_cost_ratio=0.80, hire_cash_buffer=1.0, fire_trigger=1.20,
            campus_slack=0.15, campus_cash_floor=250_000.0, campus_rank=1,
            loan_liquidity_threshold=0.5, loan_emergency=True,
            entry_cash_multiple=1.75, entry_cash_fraction=0.25,
            acquisition_ranks=(),
            bond_revenue_multiple=1.5, bond_cash_floor=500_000.0,
            bond_probability=0.05, bond_term_quarters=2, bond_rate=0.06,
        ),
        "Medium": TierPolicy(
            name="Medium",
            target_cost_ratio=0.60, hire_cash_buffer=2.0, fire_trigger=1.15,
            campus_slack=0.20, campus_cash_floor=1_000_000.0, campus_rank=1,
            loan_liquidity_threshold=0.6, loan_emergency=False,
            entry_cash_multiple=2.0, entry_cash_fraction=0.25,
            acquisition_ranks=("Very Bad", "Bad"),
            bond_revenue_multiple=1.5, bond_cash_floor=1_000_000.0,
            bond_probability=0.15, bond_term_quarters=4, bond_rate=0.07,
        ),
        "Large": TierPolicy(
            name="Large",
            target_cost_ratio=0.50, hire_cash_buffer=3.0, fire_trigger=1.10,
            campus_slack=0.25, campus_cash_floor=5_000_000.0, campus_rank=-2,
            loan_liquidity_threshold=0.7, loan_emergency=False,
            loan_when_cash_negative=True, loan_min_negative_quarters=2,
            entry_cash_multiple=3.0, entry_cash_fraction=0.20,
            acquisition_ranks=("Very Bad", "Bad"),
            bond_revenue_multiple=2.0, bond_cash_floor=5_000_000.0,
            bond_probability=0.20, bond_term_quarters=4, bond_rate=0.07,
        ),
        "Big Tech": TierPolicy(
            name="Big Tech",
            target_cost_ratio=0.40, hire_cash_buffer=4.0, fire_trigger=1.05,
            campus_slack=0.30, campus_cash_floor=10_000_000.0, campus_rank=-1,
            loan_liquidity_threshold=0.8, loan_emergency=False,
            loan_market_cap_fraction=0.1,
            entry_cash_multiple=4.0, entry_cash_fraction=0.30,
            acquisition_ranks=("Very Bad", "Bad", "Moderate"),
            bond_revenue_multiple=2.5, bond_cash_floor=10_000_000.0,
            bond_probability=0.15, bond_term_quarters=8, bond_rate=0.08,
        ),
    }


def _default_tier_setups() -> Dict[str, TierSetup]:
    return {
        "Startup": TierSetup(
            name="Startup", initial_count=5, initial_market_count=1,
            initial_campus=CampusType("Garage", 0.0, 0.0, 10),
            initial_employee_range=(10, 20), initial_cash_range=(500_000.0, 2_000_000.0),
            spawn_campus=CampusType("Garage", 0.0, 0.0, 10),
            spawn_employee_range=(5, 10), spawn_cash_range=(500_000.0, 2_000_000.0),
            spawn_product_count=1, share_ratio=1,
        ),
        "Medium": TierSetup(
            name="Medium", initial_count=7, initial_market_count=2,
            initial_campus=CampusType("Small Office", 250_000.0, 0.02, 50),
            initial_employee_range=(35, 70), initial_cash_range=(3_000_000.0, 6_000_000.0),
            spawn_campus=CampusType("Small Office", 400_000.0, 0.02, 50),
            spawn_employee_range=(15, 35), spawn_cash_range=(3_000_000.0, 5_000_000.0),
            spawn_product_count=2, share_ratio=2,
        ),
        "Large": TierSetup(
            name="Large", initial_count=5, initial_market_count=4,
            initial_campus=CampusType("Large Office", 2_500_000.0, 0.04, 125),
            initial_employee_range=(80, 140), initial_cash_range=(12_000_000.0, 18_000_000.0),
            spawn_campus=CampusType("Large Office", 1_000_000.0, 0.04, 150),
            spawn_employee_range=(60, 100), spawn_cash_range=(12_000_000.0, 20_000_000.0),
            spawn_product_count=3, share_ratio=4,
        ),
        "Big Tech": TierSetup(
            name="Big Tech", initial_count=3, initial_market_count=5,
            initial_campus=CampusType("Large Building", 5_000_000.0, 0.08, 250),
            initial_employee_range=(180, 300), initial_cash_range=(25_000_000.0, 40_000_000.0),
            spawn_campus=CampusType("Large Building", 1_600_000.0, 0.08, 275),
            spawn_employee_range=(120, 200), spawn_cash_range=(25_000_000.0, 40_000_000.0),
            spawn_product_count=4, share_ratio=8,
        ),
    }


@dataclass
class AIBehaviorConfig:
    """Cross-tier AI rules."""
    tiers: Dict[str, TierPolicy] = field(default_factory=_default_tier_policies)
    setups: Dict[str, TierSetup] = field(default_factory=_default_tier_setups)
    acquisition_min_turn: int = 12
    acquisition_cooldown_turns: int = 5
    acquisition_target_ranks: Tuple[str, ...] = ("Very Good", "Good")
    bankruptcy_quarters: int = 4
    initial_assignment_range: Tuple[int, int] = (1, 3)
    new_product_assignment: Dict[str, int] = field(default_factory=lambda: {
        "r&d": 2, "q&a": 1, "marketing": 2,
    })
    # (r&d, q&a, marketing) split by the product's quality rank
    rank_splits: Dict[str, Tuple[float, float, float]] = field(default_factory=lambda: {
        "Very Bad": (0.6, 0.1, 0.3),
        "Bad": (0.6, 0.1, 0.3),
        "Moderate": (0.4, 0.3, 0.3),
        "Good": (0.2, 0.4, 0.4),
        "Very Good": (0.2, 0.4, 0.4),
    })


@dataclass
class PlayerConfig:
    """Player company start and command costs."""
    default_name: str = "Player Co"
    starting_cash: float = 1_000_000.0
    starting_employees: int = 5
    starting_campus: CampusType = field(default_factory=lambda: CampusType("Garage", 0.0, 0.0, 10))
    founding_assignment: Dict[str, int] = field(default_factory=lambda: {
        "r&d": 2, "q&a": 1, "marketing": 2,
    })
    share_tier: str = "Startup"

    product_launch_cost: float = 50_000.0
    hiring_cost_per_employee: float = 10_000.0
    severance_per_employee: float = 7_500.0
    loan_min: float = 10_000.0
    loan_max: float = 10_000_000.0
    loan_max_payment_cash_fraction: float = 0.10
    bond_min: float = 5_000.0
    bond_max: float = 5_000_000.0


@dataclass
class SpawnConfig:
    """Periodic AI company and market spawning."""
    company_interval_turns: int = 8
    market_interval_turns: int = 12
    companies_per_wave: int = 3
    max_spawned_companies: int = 100
    tier_weights: Dict[str, float] = field(default_factory=lambda: {
        "Startup": 0.50, "Medium": 0.25, "Large": 0.15, "Big Tech": 0.05,
    })
    seed_revenue_per_product: float = 1000.0
    seed_assignment: Dict[str, int] = field(default_factory=lambda: {
        "r&d": 1, "q&a": 1, "marketing": 1,
    })


@dataclass
class EndGameConfig:
    """Win/loss thresholds."""
    market_cap_share_to_win: float = 0.70


@dataclass
class NewsConfig:
    """Feed retention."""
    max_news_items: int = 100


@dataclass
class SimulationConfig:
    """Master configuration for the entire simulation."""

    # Sub-configurations
    time: TimeConfig = field(default_factory=TimeConfig)
    finance: FinanceConfig = field(default_factory=FinanceConfig)
    markets: MarketConfig = field(default_factory=MarketConfig)
    ai: AIBehaviorConfig = field(default_factory=AIBehaviorConfig)
    player: PlayerConfig = field(default_factory=PlayerConfig)
    spawn: SpawnConfig = field(default_factory=SpawnConfig)
    end_game: EndGameConfig = field(default_factory=EndGameConfig)
    news: NewsConfig = field(default_factory=NewsConfig)

    campus_catalog: List[CampusType] = field(default_factory=_default_campus_catalog)

    # Process-wide defaults, overridable from the environment
    seed: Optional[int] = None
    log_level: str = "INFO"

    def __post_init__(self):
        """Validation and derived values."""
        if self.time.quarters_per_year <= 0:
            raise ValueError("quarters_per_year must be positive")
        if self.time.months_per_quarter <= 0:
            raise ValueError("months_per_quarter must be positive")

        if not (0.0 <= self.markets.churn_rate <= 1.0):
            raise ValueError("churn_rate must be in [0, 1]")
        if self.markets.recession_quarters <= 0:
            raise ValueError("recession_quarters must be positive")
        for category, delay in self.markets.effectiveness_delays.items():
            if delay < 1.0:
                raise ValueError(f"effectiveness delay for {category} must be >= 1, got {delay}")

        if set(self.ai.tiers) != set(self.ai.setups):
            raise ValueError("every AI tier needs both a policy and a setup entry")
        if set(self.spawn.tier_weights) - set(self.ai.tiers):
            raise ValueError("spawn tier weights reference an unknown tier")
        if not (0.0 < self.end_game.market_cap_share_to_win <= 1.0):
            raise ValueError("market_cap_share_to_win must be in (0, 1]")

    def campus_by_name(self, name: str) -> Optional[CampusType]:
        for campus in self.campus_catalog:
            if campus.name == name:
                return campus
        return None

    def quarter_label(self, turn_index: int, start_year: Optional[int] = None) -> Tuple[int, int]:
        """Map a turn index to its (year, quarter) calendar label."""
        base_year = self.time.start_year if start_year is None else start_year
        per_year = self.time.quarters_per_year
        return base_year + turn_index // per_year, turn_index % per_year + 1


def load_env_overrides(config: Optional[SimulationConfig] = None) -> SimulationConfig:
    """
    Apply TECHNOPOLY_* overrides from the environment (and a local .env file).

    Recognised variables: TECHNOPOLY_SEED, TECHNOPOLY_START_YEAR, TECHNOPOLY_LOG_LEVEL.
    """
    load_dotenv()
    config = config or CONFIG

    seed = os.getenv("TECHNOPOLY_SEED")
    if seed:
        config.seed = int(seed)
    start_year = os.getenv("TECHNOPOLY_START_YEAR")
    if start_year:
        config.time.start_year = int(start_year)
    level = os.getenv("TECHNOPOLY_LOG_LEVEL")
    if level:
        config.log_level = level.upper()
        logging.getLogger().setLevel(config.log_level)

    return config


# Global configuration instance
CONFIG = SimulationConfig()
