"""
Player Commands

Every command validates all of its preconditions before touching state and
reports the outcome as a CommandResult. Validation failures are ordinary
results carrying an ErrorCode string, never exceptions.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from config import CONFIG
from economy import Economy
from finances import acquisition_price, format_money
from models import CATEGORIES, Bond, Loan, Product, amortized_payment

logger = logging.getLogger(__name__)


class ErrorCode:
    """Failure classifications returned in CommandResult.error."""
    GAME_OVER = "game_over"
    ALREADY_FOUNDED = "already_founded"
    INVALID_PARAMETERS = "invalid_parameters"
    NAME_TAKEN = "name_taken"
    UNKNOWN_MARKET = "unknown_market"
    UNKNOWN_PRODUCT = "unknown_product"
    DUPLICATE_PRODUCT = "duplicate_product"
    MARKET_PRESENCE = "market_presence"
    INSUFFICIENT_CASH = "insufficient_cash"
    NEGATIVE_ASSIGNMENT = "negative_assignment"
    OVER_ALLOCATION = "over_allocation"
    CAPACITY = "capacity"
    OVER_FIRING = "over_firing"
    UNKNOWN_CAMPUS = "unknown_campus"
    DUPLICATE_CAMPUS = "duplicate_campus"
    AMOUNT_OUT_OF_RANGE = "amount_out_of_range"
    PAYMENT_TOO_HIGH = "payment_too_high"
    UNKNOWN_TARGET = "unknown_target"
    PENDING_ACQUISITION = "pending_acquisition"
    GROWTH_PROTECTED = "growth_protected"


@dataclass
class CommandResult:
    success: bool
    error: Optional[str] = None
    message: str = ""
    data: Dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "success": self.success,
            "error": self.error,
            "message": self.message,
            "data": dict(self.data),
        }


def _fail(error: str, message: str) -> CommandResult:
    return CommandResult(success=False, error=error, message=message)


def _ok(message: str, **data) -> CommandResult:
    return CommandResult(success=True, message=message, data=data)


class PlayerCommands:
    """Command surface for the human player's company."""

    def __init__(self, economy: Economy):
        self.economy = economy

    @property
    def player(self):
        return self.economy.player

    def _announce(self, message: str) -> None:
        self.economy.public_news.append(message)

    def found_company(self, company_name: str, market_name: str, product_name: str) -> CommandResult:
        """
        Name the player's company and create its first product.

        Opening market shares are assigned here, once, for every company.
        """
        economy = self.economy
        if economy.game_over:
            return _fail(ErrorCode.GAME_OVER, "The game is over")
        if economy.player_founded:
            return _fail(ErrorCode.ALREADY_FOUNDED, "Company already founded")
        company_name = (company_name or "").strip()
        product_name = (product_name or "").strip()
        if not company_name or not product_name:
            return _fail(ErrorCode.INVALID_PARAMETERS, "Company and product names are required")
        if economy.market_by_name(market_name) is None:
            return _fail(ErrorCode.UNKNOWN_MARKET, f"Market '{market_name}' does not exist")
        if company_name in economy.used_company_names:
            return _fail(ErrorCode.NAME_TAKEN, f"Company name '{company_name}' is taken")
        if product_name in economy.used_product_names:
            return _fail(ErrorCode.DUPLICATE_PRODUCT, f"Product name '{product_name}' is taken")

        player = self.player
        player.name = company_name
        player.products[product_name] = Product(
            owner_name=company_name,
            market_name=market_name,
            assigned_employees=dict(CONFIG.player.founding_assignment),
        )
        economy.used_company_names.add(company_name)
        economy.used_product_names.add(product_name)
        economy.player_founded = True
        economy.assign_initial_market_shares()

        self._announce(f"{company_name} was founded and launched {product_name} in {market_name}!")
        logger.info("player founded %s in %s", company_name, market_name)
        return _ok(f"Founded {company_name}", product=product_name, market=market_name)

    def launch_product(self, market_name: str, product_name: str) -> CommandResult:
        economy = self.economy
        player = self.player
        cost = CONFIG.player.product_launch_cost
        if economy.game_over:
            return _fail(ErrorCode.GAME_OVER, "The game is over")
        if not market_name or not product_name:
            return _fail(ErrorCode.INVALID_PARAMETERS, "Market name and product name are required")
        if product_name in player.products or product_name in economy.used_product_names:
            return _fail(ErrorCode.DUPLICATE_PRODUCT, "Product name already exists")
        if player.has_product_in(market_name):
            return _fail(ErrorCode.MARKET_PRESENCE, "You already have a product in this market")
        if economy.market_by_name(market_name) is None:
            return _fail(ErrorCode.UNKNOWN_MARKET, "Market does not exist")
        if player.cash < cost:
            return _fail(ErrorCode.INSUFFICIENT_CASH, "Insufficient funds")

        player.cash -= cost
        player.products[product_name] = Product(owner_name=player.name, market_name=market_name)
        economy.used_product_names.add(product_name)
        self._announce(f"{player.name} launched {product_name} in the {market_name} market!")
        return _ok(f"Launched {product_name}", cost=cost)

    def reassign_employees(self, product_name: str, assignments: Dict[str, int]) -> CommandResult:
        player = self.player
        if self.economy.game_over:
            return _fail(ErrorCode.GAME_OVER, "The game is over")
        product = player.products.get(product_name)
        if product is None:
            return _fail(ErrorCode.UNKNOWN_PRODUCT, "Product does not exist")
        if set(assignments) != set(CATEGORIES):
            return _fail(ErrorCode.INVALID_PARAMETERS,
                         f"Assignments must cover exactly {', '.join(CATEGORIES)}")
        if any(count < 0 for count in assignments.values()):
            return _fail(ErrorCode.NEGATIVE_ASSIGNMENT, "Employee assignments cannot be negative")

        other_products = sum(
            p.total_assigned() for name, p in player.products.items() if name != product_name
        )
        if other_products + sum(assignments.values()) > player.employees:
            return _fail(ErrorCode.OVER_ALLOCATION, "Not enough employees available")

        product.assigned_employees = {c: int(assignments[c]) for c in CATEGORIES}
        return _ok(f"Updated assignments for {product_name}", assignments=dict(product.assigned_employees))

    def hire(self, count: int) -> CommandResult:
        player = self.player
        if self.economy.game_over:
            return _fail(ErrorCode.GAME_OVER, "The game is over")
        if count <= 0:
            return _fail(ErrorCode.INVALID_PARAMETERS, "Must hire at least 1 employee")
        cost = count * CONFIG.player.hiring_cost_per_employee
        if player.cash < cost:
            return _fail(ErrorCode.INSUFFICIENT_CASH, "Insufficient funds for hiring cost")
        if player.employees + count > player.employee_capacity():
            return _fail(ErrorCode.CAPACITY, "Not enough capacity for new employees")

        player.cash -= cost
        player.employees += count
        self._announce(f"{player.name} hired {count} new employee{'' if count == 1 else 's'}!")
        return _ok(f"Hired {count}", cost=cost)

    def fire(self, count: int) -> CommandResult:
        player = self.player
        if self.economy.game_over:
            return _fail(ErrorCode.GAME_OVER, "The game is over")
        if count <= 0:
            return _fail(ErrorCode.INVALID_PARAMETERS, "Must fire at least 1 employee")
        if count > player.employees:
            return _fail(ErrorCode.OVER_FIRING, "Cannot fire more employees than you have")
        severance = count * CONFIG.player.severance_per_employee
        if player.cash < severance:
            return _fail(ErrorCode.INSUFFICIENT_CASH, "Insufficient funds for severance pay")

        player.cash -= severance
        player.employees -= count
        overflow = player.total_assigned() - player.employees
        if overflow > 0:
            player.unassign_employees(overflow)
        self._announce(f"{player.name} laid off {count} employee{'' if count == 1 else 's'}.")
        return _ok(f"Fired {count}", severance_paid=severance)

    def buy_campus(self, campus_name: str) -> CommandResult:
        player = self.player
        if self.economy.game_over:
            return _fail(ErrorCode.GAME_OVER, "The game is over")
        campus = CONFIG.campus_by_name(campus_name)
        if campus is None:
            return _fail(ErrorCode.UNKNOWN_CAMPUS, "Invalid campus type")
        if any(c.name == campus_name for c in player.campuses):
            return _fail(ErrorCode.DUPLICATE_CAMPUS, "You already own this campus type")
        if player.cash < campus.cost:
            return _fail(ErrorCode.INSUFFICIENT_CASH, "Insufficient funds to purchase this campus")

        player.cash -= campus.cost
        player.campuses.append(campus)
        self._announce(f"{player.name} purchased a {campus_name} campus!")
        return _ok(f"Bought {campus_name}", cost=campus.cost)

    def take_loan(self, amount: float, term_months: int, annual_rate: float) -> CommandResult:
        player = self.player
        config = CONFIG.player
        if self.economy.game_over:
            return _fail(ErrorCode.GAME_OVER, "The game is over")
        if amount <= 0 or term_months <= 0 or annual_rate <= 0:
            return _fail(ErrorCode.INVALID_PARAMETERS, "Invalid loan parameters")
        if not (config.loan_min <= amount <= config.loan_max):
            return _fail(ErrorCode.AMOUNT_OUT_OF_RANGE,
                         f"Loan amount must be between {format_money(config.loan_min)} "
                         f"and {format_money(config.loan_max)}")
        payment = amortized_payment(amount, annual_rate, term_months)
        if payment > player.cash * config.loan_max_payment_cash_fraction:
            return _fail(ErrorCode.PAYMENT_TOO_HIGH,
                         "Monthly payment too high relative to cash reserves")

        loan = Loan(principal=amount, annual_rate=annual_rate, term_remaining_months=term_months)
        player.loans.append(loan)
        player.cash += amount
        self._announce(f"{player.name} secured a {format_money(amount)} loan at "
                       f"{annual_rate * 100:.1f}% APR.")
        return _ok("Loan approved", monthly_payment=loan.monthly_payment)

    def buy_bond(self, amount: float, term_quarters: int, annual_rate: float) -> CommandResult:
        player = self.player
        config = CONFIG.player
        if self.economy.game_over:
            return _fail(ErrorCode.GAME_OVER, "The game is over")
        if amount <= 0 or term_quarters <= 0 or annual_rate <= 0:
            return _fail(ErrorCode.INVALID_PARAMETERS, "Invalid bond parameters")
        if not (config.bond_min <= amount <= config.bond_max):
            return _fail(ErrorCode.AMOUNT_OUT_OF_RANGE,
                         f"Bond amount must be between {format_money(config.bond_min)} "
                         f"and {format_money(config.bond_max)}")
        if player.cash < amount:
            return _fail(ErrorCode.INSUFFICIENT_CASH, "Insufficient funds to purchase this bond")

        player.cash -= amount
        player.bonds.append(Bond(principal=amount, annual_rate=annual_rate, term_quarters=term_quarters))
        self._announce(f"{player.name} invested {format_money(amount)} in bonds yielding "
                       f"{annual_rate * 100:.1f}% annually.")
        return _ok("Bond purchased", quarterly_interest=amount * annual_rate / 4.0)

    def quote_acquisition(self, target_name: str) -> Optional[float]:
        target = self.economy.find_ai_company(target_name)
        if target is None:
            return None
        return acquisition_price(target)

    def initiate_acquisition(self, target_name: str, price: Optional[float] = None) -> CommandResult:
        """
        Submit a takeover offer that resolves next turn.

        Without an explicit price the standard acquisition price is offered.
        """
        economy = self.economy
        player = self.player
        if economy.game_over:
            return _fail(ErrorCode.GAME_OVER, "The game is over")
        target = economy.find_ai_company(target_name)
        if target is None:
            return _fail(ErrorCode.UNKNOWN_TARGET, "Target company not found")
        ctx = economy.context()
        if ctx.is_pending_target(target_name):
            return _fail(ErrorCode.PENDING_ACQUISITION, "Acquisition already pending for this company")
        if price is None:
            price = acquisition_price(target)
        if price <= 0:
            return _fail(ErrorCode.INVALID_PARAMETERS, "Invalid acquisition price")
        if player.cash < price:
            return _fail(ErrorCode.INSUFFICIENT_CASH, "Insufficient funds for this acquisition")
        if target.is_growth_protected():
            return _fail(ErrorCode.GROWTH_PROTECTED,
                         "Target company is protected by high growth (>30% last quarter)")

        ctx.submit_acquisition(player, target_name, price)
        player.last_acquisition_turn = economy.turn
        self._announce(f"{player.name} submitted acquisition offer for {target_name} "
                       f"at {format_money(price)}.")
        return _ok(f"Offer submitted for {target_name}", price=price)
