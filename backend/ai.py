"""
AI Strategy Engine

One shared quarterly decision routine for every AI company. The four tiers
(Startup, Medium, Large, Big Tech) differ only in the TierPolicy constants
held in config.CONFIG.ai.tiers, never in code paths.

Per turn, in order: staffing, campus expansion, liquidity, new product entry,
acquisitions (a submitted offer skips the rest) and bond investment,
followed by a full re-partition of employees across products.
"""

import logging
import math
import random
from typing import Dict, List, Optional

from config import CONFIG, CampusType, TierPolicy
from context import TurnContext
from finances import acquisition_price, format_money
from models import CATEGORIES, Bond, Company, Loan, Market, Product

logger = logging.getLogger(__name__)


class AIController:
    """
    Drives AI companies through one quarter.

    All randomness (market sampling, bond gating) goes through the injected
    rng so runs can be replayed deterministically.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    # --- Entry point ---

    def take_turn(self, company: Company, ctx: TurnContext) -> None:
        """
        Run one quarter for an AI company.

        The negative-cash counter is updated before and after the tier logic;
        a company already bankrupt at the first check goes through bankruptcy
        handling instead of acting.
        """
        company.update_negative_cash_quarters()
        if company.is_bankrupt():
            self.handle_bankruptcy(company, ctx)
            return

        policy = CONFIG.ai.tiers[company.tier]
        self._run_policy(company, policy, ctx)

        company.update_negative_cash_quarters()

        changes = self.adjust_employee_assignments(company, ctx)
        for product_name, deltas in changes.items():
            for department, delta in deltas.items():
                if delta > 0:
                    ctx.emit_competitor_news(
                        f"{company.name} assigned {delta} additional employees to "
                        f"{department} for product '{product_name}'."
                    )
                elif delta < 0:
                    ctx.emit_competitor_news(
                        f"{company.name} removed {-delta} employees from "
                        f"{department} for product '{product_name}'."
                    )

    def _run_policy(self, company: Company, policy: TierPolicy, ctx: TurnContext) -> None:
        revenue = company.total_revenue_this_quarter()
        profit = company.quarterly_profit()
        liquidity = self.liquidity_ratio(company)
        target = self.target_employee_count(company, policy.target_cost_ratio)

        # Staffing
        if company.employees < target:
            hires = int(min(target - company.employees, company.remaining_capacity()))
            if company.cash > revenue * policy.hire_cash_buffer and hires > 0:
                company.employees += hires
                ctx.emit_competitor_news(f"{company.name} hires {hires} new employees.")
        elif profit < 0 and company.employees > target * policy.fire_trigger:
            self.fire_excess_employees(company, target, ctx)

        # Campus expansion
        capacity = company.employee_capacity()
        if (capacity > 0
                and company.remaining_capacity() < policy.campus_slack * capacity
                and company.cash > policy.campus_cash_floor):
            self.build_campus(company, policy.campus_rank, ctx)

        # Liquidity
        if self._needs_loan(company, policy, liquidity):
            self.take_loan_if_needed(company, policy.loan_emergency, ctx)

        # New product entry
        candidates = [m for m in ctx.markets if not company.has_product_in(m.name)]
        if candidates:
            market = self.rng.choice(candidates)
            entry_cost = self.entry_cost(market)
            if profit > 0 and company.cash > entry_cost * policy.entry_cash_multiple:
                self.open_new_product(company, market, policy.entry_cash_fraction, ctx)

        # Acquisitions; a submitted offer ends the turn
        if self.attempt_acquisition(company, policy, ctx):
            return

        # Bonds
        if (company.cash > revenue * policy.bond_revenue_multiple
                and company.cash > policy.bond_cash_floor
                and self.rng.random() < policy.bond_probability):
            self.buy_bond(company, policy.bond_term_quarters, policy.bond_rate, ctx)

    # --- Helpers ---

    @staticmethod
    def liquidity_ratio(company: Company) -> float:
        """Cash over this quarter's revenue; a fixed default when there is no revenue."""
        revenue = company.total_revenue_this_quarter()
        if revenue > 0:
            return company.cash / revenue
        return CONFIG.finance.default_liquidity_ratio

    @staticmethod
    def target_employee_count(company: Company, target_cost_ratio: float) -> int:
        revenue = company.total_revenue_this_quarter()
        return math.floor(target_cost_ratio * revenue / CONFIG.finance.employee_cost_per_quarter)

    @staticmethod
    def entry_cost(market: Market) -> float:
        config = CONFIG.markets
        return market.size * config.entry_cost_size_fraction * config.entry_cost_quarters

    @staticmethod
    def _needs_loan(company: Company, policy: TierPolicy, liquidity: float) -> bool:
        if (policy.loan_market_cap_fraction is not None
                and company.cash >= company.market_cap * policy.loan_market_cap_fraction):
            return False
        if policy.loan_when_cash_negative and company.cash < 0:
            return True
        return (liquidity < policy.loan_liquidity_threshold
                and company.negative_cash_quarters >= policy.loan_min_negative_quarters)

    # --- Bankruptcy ---

    def handle_bankruptcy(self, company: Company, ctx: TurnContext) -> None:
        """
        Liquidate bonds as a last resort; if cash is still negative, hand every
        asset to the company with the largest market cap and leave the roster.
        """
        if company.cash < 0 and company.bonds:
            self._liquidate_bonds(company, ctx)

        if company.cash >= 0:
            ctx.emit_competitor_news(f"{company.name} avoided bankruptcy after liquidating bonds!")
            return

        largest = ctx.player
        for other in ctx.ai_companies:
            if other is not company and other.market_cap > largest.market_cap:
                largest = other

        ctx.merge_companies(largest, company)
        ctx.remove_ai_company(company)
        ctx.emit_competitor_news(
            f"{company.name} has gone BANKRUPT! All assets given to {largest.name}."
        )
        logger.info("%s went bankrupt, assets to %s", company.name, largest.name)

    @staticmethod
    def _liquidate_bonds(company: Company, ctx: TurnContext) -> None:
        proceeds = sum(b.principal for b in company.bonds)
        company.cash += proceeds
        company.bonds = []
        ctx.emit_competitor_news(
            f"{company.name} sold all bonds for {format_money(proceeds)} to raise emergency funds."
        )

    # --- Staffing ---

    def fire_excess_employees(self, company: Company, target: int, ctx: TurnContext) -> None:
        """
        Cut headcount down to target.

        Assignments are stripped first (weakest products, marketing before q&a
        before r&d). Severance is 20k a head; when cash cannot cover it all,
        only the affordable number is fired and anyone beyond campus capacity
        is released without severance.
        """
        excess = max(0, company.employees - target)
        if excess == 0:
            return

        company.unassign_employees(excess)

        severance = CONFIG.finance.ai_severance_per_employee
        total_cost = excess * severance
        if company.cash >= total_cost:
            company.cash -= total_cost
            company.employees -= excess
            ctx.emit_competitor_news(
                f"{company.name} fired {excess} employees, incurring "
                f"{format_money(total_cost)} in severance costs."
            )
            return

        affordable = math.floor(max(company.cash, 0.0) / severance)
        if affordable > 0:
            company.cash -= affordable * severance
            company.employees -= affordable
            ctx.emit_competitor_news(
                f"{company.name} fired {affordable} employees, incurring "
                f"{format_money(affordable * severance)} in severance costs (limited by cash)."
            )

        over_capacity = max(0, company.employees - company.employee_capacity())
        if over_capacity > 0:
            over_capacity = int(over_capacity)
            company.employees -= over_capacity
            ctx.emit_competitor_news(
                f"{company.name} released {over_capacity} employees due to campus capacity limits."
            )

    def adjust_employee_assignments(self, company: Company,
                                    ctx: TurnContext) -> Dict[str, Dict[str, int]]:
        """
        Re-partition every employee across the company's products.

        Each product gets an even base share; the highest-effectiveness
        products take one extra each until the remainder is used up. The
        per-product total is split by the product's quality rank.

        Returns:
            Per product name, the change in headcount for each department
        """
        if not company.products:
            return {}

        previous = {name: dict(p.assigned_employees) for name, p in company.products.items()}
        for product in company.products.values():
            product.assigned_employees = {category: 0 for category in CATEGORIES}

        count = len(company.products)
        base, remainder = divmod(company.employees, count)
        ordered = sorted(company.products.items(), key=lambda item: item[1].effectiveness,
                         reverse=True)

        changes: Dict[str, Dict[str, int]] = {}
        for name, product in ordered:
            total = base
            if remainder > 0:
                total += 1
                remainder -= 1

            rd_pct, qa_pct, _ = CONFIG.ai.rank_splits[ctx.quality_rank(product)]
            rd = math.floor(total * rd_pct)
            qa = math.floor(total * qa_pct)
            product.assigned_employees = {"r&d": rd, "q&a": qa, "marketing": total - rd - qa}

            changes[name] = {
                category: product.assigned_employees[category] - previous[name][category]
                for category in CATEGORIES
            }
        return changes

    # --- Capital allocation ---

    @staticmethod
    def _pick_campus(options: List[CampusType], rank: int) -> CampusType:
        if rank >= 0:
            return options[min(rank, len(options) - 1)]
        return options[max(len(options) + rank, 0)]

    def build_campus(self, company: Company, rank: int, ctx: TurnContext) -> Optional[CampusType]:
        """Buy the rank-th cheapest (negative: from the top) campus cheaper than current cash."""
        affordable = sorted((c for c in CONFIG.campus_catalog if c.cost < company.cash),
                            key=lambda c: c.cost)
        if not affordable:
            return None

        campus = self._pick_campus(affordable, rank)
        company.cash -= campus.cost
        company.campuses.append(campus)
        ctx.emit_competitor_news(
            f"{company.name} built a new campus: {campus.name} for {format_money(campus.cost)}."
        )
        return campus

    def take_loan_if_needed(self, company: Company, emergency: bool,
                            ctx: TurnContext) -> Optional[Loan]:
        finance = CONFIG.finance
        max_loan = company.total_revenue_this_quarter() * finance.ai_loan_revenue_multiple
        if max_loan < finance.ai_min_loan:
            return None
        amount = max_loan if emergency else max_loan * 0.5

        rate = finance.ai_loan_base_rate + finance.ai_loan_rate_step * len(company.loans)
        loan = Loan(principal=amount, annual_rate=rate,
                    term_remaining_months=finance.ai_loan_term_months)
        company.loans.append(loan)
        company.cash += amount
        ctx.emit_competitor_news(
            f"{company.name} took a loan of {format_money(amount)} at {rate * 100:.1f}% interest."
        )
        return loan

    def open_new_product(self, company: Company, market: Market, cash_fraction: float,
                         ctx: TurnContext) -> Optional[Product]:
        """
        Enter market if the entry cost fits within cash_fraction of cash.

        The entrant starts 40% below the weakest incumbent's effectiveness and
        takes a fixed slice of revenue from the market's top earner.
        """
        cost = self.entry_cost(market)
        if not (cost < company.cash * cash_fraction and company.cash >= cost):
            return None

        company.cash -= cost
        product = Product(owner_name=company.name, market_name=market.name)

        incumbents = ctx.products_in_market(market.name)
        if incumbents:
            weakest = min(p.effectiveness for p in incumbents)
            discount = CONFIG.markets.entry_effectiveness_discount
            product.effectiveness = max(0.0, weakest - weakest * discount)

            siphon = CONFIG.markets.entry_revenue_siphon
            leader = max(incumbents, key=lambda p: p.revenue)
            if leader.revenue > siphon:
                leader.revenue -= siphon
                product.revenue = siphon

        product.assigned_employees = dict(CONFIG.ai.new_product_assignment)
        name = company.unique_product_name(ctx.names.product_name(ctx.used_product_names))
        company.products[name] = product
        ctx.invalidate_ranks()
        ctx.emit_competitor_news(
            f"{company.name} opened a new product in {market.name} for {format_money(cost)}."
        )
        return product

    def attempt_acquisition(self, company: Company, policy: TierPolicy,
                            ctx: TurnContext) -> bool:
        """
        Look for a takeover target behind one of the company's weak products.

        Submits at most one pending acquisition per turn.

        Returns:
            True if an acquisition was submitted
        """
        if not policy.acquisition_ranks:
            return False
        if ctx.turn < CONFIG.ai.acquisition_min_turn:
            return False
        if ctx.turn - company.last_acquisition_turn < CONFIG.ai.acquisition_cooldown_turns:
            return False

        for product in list(company.products.values()):
            if ctx.quality_rank(product) not in policy.acquisition_ranks:
                continue
            for other in ctx.products_in_market(product.market_name):
                if other.owner_name == company.name:
                    continue
                if ctx.quality_rank(other) not in CONFIG.ai.acquisition_target_ranks:
                    continue
                target = ctx.find_ai_company(other.owner_name)
                if target is None or ctx.is_pending_target(target.name):
                    continue

                price = acquisition_price(target)
                if company.cash >= price:
                    company.last_acquisition_turn = ctx.turn
                    ctx.submit_acquisition(company, target.name, price)
                    ctx.emit_competitor_news(
                        f"{company.name} initiates acquisition of {target.name}!"
                    )
                    logger.info("%s bids %.2f for %s", company.name, price, target.name)
                    return True
        return False

    def buy_bond(self, company: Company, term_quarters: int, annual_rate: float,
                 ctx: TurnContext) -> Optional[Bond]:
        invest = company.cash * CONFIG.finance.ai_bond_investment_fraction
        if invest < CONFIG.finance.ai_min_bond_investment:
            return None

        company.cash -= invest
        bond = Bond(principal=invest, annual_rate=annual_rate, term_quarters=term_quarters)
        company.bonds.append(bond)
        ctx.emit_competitor_news(
            f"{company.name} purchased a {term_quarters}-quarter bond at "
            f"{annual_rate * 100:.1f}% for {format_money(invest)}."
        )
        return bond
