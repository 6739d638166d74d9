"""
Quarterly Financial Settlement

Applies one quarter of bonds, operating profit, valuation and debt service to
a company, in that fixed order. Market cap is valued after profit is booked
but before loan payments leave the bank account.
"""

import logging
from typing import Iterable

from config import CONFIG
from models import Company

logger = logging.getLogger(__name__)


def net_assets(company: Company) -> float:
    """Cash plus campuses and bonds, minus outstanding loan principal. Floored at 0."""
    total = company.cash
    total += sum(c.cost for c in company.campuses)
    total += sum(b.principal for b in company.bonds)
    total -= sum(loan.principal for loan in company.loans)
    return max(0.0, total)


def compute_market_cap(company: Company) -> float:
    annualized = 4.0 * company.past_quarter_revenues.average(default=0.0)
    return max(0.0, net_assets(company) + annualized)


def _settle_bonds(company: Company) -> None:
    for bond in list(company.bonds):
        company.cash += bond.quarterly_interest()
        bond.term_remaining -= 1
        if bond.term_remaining <= 0:
            company.cash += bond.principal
            company.bonds.remove(bond)


def _settle_profit(company: Company) -> float:
    revenue = company.total_revenue_this_quarter()
    profit = revenue - company.total_spending_this_quarter()
    company.cash += profit
    company.past_quarter_profits.append(profit)
    company.past_quarter_revenues.append(revenue)
    return profit


def _settle_loans(company: Company) -> None:
    months = CONFIG.time.months_per_quarter
    for loan in list(company.loans):
        interest = loan.monthly_interest()
        principal_portion = max(0.0, loan.monthly_payment - interest)
        loan.principal = max(0.0, loan.principal - principal_portion * months)
        loan.term_remaining_months -= months
        company.cash -= loan.monthly_payment * months
        if loan.term_remaining_months <= 0 or loan.principal <= 0:
            company.loans.remove(loan)


def settle_company(company: Company) -> None:
    """
    Run one quarter of settlement for a single company.

    Order: bonds -> operating profit -> market cap -> loans.
    """
    _settle_bonds(company)
    profit = _settle_profit(company)
    company.market_cap = compute_market_cap(company)
    _settle_loans(company)
    logger.debug("settled %s: profit=%.2f cash=%.2f cap=%.2f",
                 company.name, profit, company.cash, company.market_cap)


def update_finances(companies: Iterable[Company]) -> None:
    for company in companies:
        settle_company(company)


def acquisition_price(target: Company) -> float:
    """
    Takeover price: a 30% premium over annualized revenue plus net assets,
    never below the target's market cap.
    """
    history = target.past_quarter_revenues
    avg_revenue = history.average() if len(history) else target.total_revenue_this_quarter()
    valuation = 4.0 * avg_revenue + net_assets(target)
    return max(CONFIG.finance.acquisition_premium * valuation, target.market_cap)


def format_money(amount: float) -> str:
    """Render an amount as $1.23B / $4.56M / $7.89K / $12.00."""
    sign = "-" if amount < 0 else ""
    value = abs(amount)
    if value >= 1e9:
        return f"{sign}${value / 1e9:.2f}B"
    if value >= 1e6:
        return f"{sign}${value / 1e6:.2f}M"
    if value >= 1e3:
        return f"{sign}${value / 1e3:.2f}K"
    return f"{sign}${value:.2f}"
