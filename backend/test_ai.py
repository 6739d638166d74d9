"""
Test suite for the AI strategy engine

Covers the shared tier routine end to end on a small hand-built world, plus
the individual decisions: firing, campus choice, loans, product entry,
acquisition bids, bankruptcy and assignment re-partitioning.
"""

import random
from collections import deque

import pytest

from ai import AIController
from config import CONFIG, CampusType
from context import TurnContext
from models import Bond, Company, Market, Product
from names import NameGenerator


class FixedRandom(random.Random):
    """Random source whose uniform draw never passes a probability gate."""

    def random(self):
        return 0.99


class ZeroRandom(random.Random):
    """Random source whose uniform draw always passes a probability gate."""

    def random(self):
        return 0.0


def make_context(ai_companies, markets, player=None, turn=0, rng=None):
    rng = rng or FixedRandom(0)
    return TurnContext(
        turn=turn,
        rng=rng,
        player=player or Company(name="Player", campuses=[CampusType("Garage", 0.0, 0.0, 10)]),
        ai_companies=ai_companies,
        markets=markets,
        pending_acquisitions=[],
        names=NameGenerator(rng),
        used_product_names=set(),
        competitor_news=deque(maxlen=100),
        public_news=deque(maxlen=100),
    )


def make_ai(name="Bot", tier="Startup", cash=1_000_000.0, employees=10, capacity=50):
    return Company(name=name, tier=tier, cash=cash, employees=employees,
                   campuses=[CampusType("Office", 0.0, 0.0, capacity)])


def add_product(company, market_name, revenue=0.0, effectiveness=0.0, product_name=None,
                assignment=None):
    product = Product(
        owner_name=company.name,
        market_name=market_name,
        revenue=revenue,
        effectiveness=effectiveness,
        assigned_employees=dict(assignment or {"r&d": 0, "q&a": 0, "marketing": 0}),
    )
    company.products[product_name or f"{company.name}-{market_name}"] = product
    return product


class TestStartupTurn:
    """A loss-making Startup with one product sheds staff and re-splits the rest"""

    def test_overstaffed_startup(self):
        market = Market(name="Widgets", size=10_000_000.0, base_growth_rate=0.1)
        company = make_ai(cash=2_000_000.0, employees=15, capacity=50)
        product = add_product(company, "Widgets", revenue=100_000.0,
                              assignment={"r&d": 5, "q&a": 5, "marketing": 5})
        ctx = make_context([company], [market])

        AIController(FixedRandom(0)).take_turn(company, ctx)

        # target = floor(0.8 * 100k / 25k) = 3, so 12 go at 20k each
        assert company.employees == 3
        assert company.cash == pytest.approx(2_000_000.0 - 240_000.0)
        assert product.assigned_employees == {"r&d": 0, "q&a": 1, "marketing": 2}
        assert company.loans == [] and company.bonds == []
        assert any("fired 12 employees" in line for line in ctx.competitor_news)
        # firing already stripped marketing and q&a, leaving 3 in r&d
        assert any("removed 3 employees from r&d" in line for line in ctx.competitor_news)
        assert any("assigned 2 additional employees to marketing" in line
                   for line in ctx.competitor_news)

    def test_hires_up_to_target_within_capacity(self):
        market = Market(name="Widgets", size=10_000_000.0, base_growth_rate=0.1)
        company = make_ai(cash=5_000_000.0, employees=2, capacity=10)
        add_product(company, "Widgets", revenue=1_000_000.0)
        ctx = make_context([company], [market])

        AIController(FixedRandom(0)).take_turn(company, ctx)

        # target is 32 but the campus only has room for 8 more
        assert company.employees == 10
        assert any("hires 8 new employees" in line for line in ctx.competitor_news)


class TestFiring:
    def test_partial_firing_when_cash_is_short(self):
        company = make_ai(cash=50_000.0, employees=12, capacity=8)
        ctx = make_context([company], [])

        AIController().fire_excess_employees(company, target=2, ctx=ctx)

        # two can be paid off, the rest above capacity are released
        assert company.cash == pytest.approx(10_000.0)
        assert company.employees == 8

    def test_nothing_to_fire(self):
        company = make_ai(employees=3)
        ctx = make_context([company], [])
        AIController().fire_excess_employees(company, target=5, ctx=ctx)
        assert company.employees == 3
        assert len(ctx.competitor_news) == 0


class TestCampusChoice:
    """Tier rank indexes the cost-sorted list of campuses cheaper than cash"""

    def test_second_cheapest_affordable(self):
        company = make_ai(cash=500_000.0)
        ctx = make_context([company], [])

        campus = AIController().build_campus(company, 1, ctx)

        assert campus.name == "Small Office"
        assert company.cash == pytest.approx(100_000.0)
        assert company.campuses[-1] is campus

    def test_negative_rank_counts_from_most_expensive(self):
        company = make_ai(cash=2_000_000.0)
        ctx = make_context([company], [])

        campus = AIController().build_campus(company, -2, ctx)

        assert campus.name == "Large Office"

    def test_rank_clamped_to_available_options(self):
        company = make_ai(cash=150_000.0)
        ctx = make_context([company], [])

        campus = AIController().build_campus(company, 1, ctx)

        assert campus.name == "Garage"

    def test_nothing_affordable(self):
        company = make_ai(cash=50_000.0)
        ctx = make_context([company], [])
        assert AIController().build_campus(company, 0, ctx) is None
        assert len(company.campuses) == 1


class TestLoans:
    def test_emergency_loan_is_four_quarters_of_revenue(self):
        company = make_ai(cash=10_000.0)
        add_product(company, "Widgets", revenue=100_000.0)
        ctx = make_context([company], [])

        loan = AIController().take_loan_if_needed(company, True, ctx)

        assert loan.principal == pytest.approx(400_000.0)
        assert loan.annual_rate == pytest.approx(0.09)
        assert loan.term_remaining_months == 60
        assert company.cash == pytest.approx(410_000.0)

    def test_rate_rises_with_each_existing_loan(self):
        company = make_ai(cash=10_000.0)
        add_product(company, "Widgets", revenue=100_000.0)
        ctx = make_context([company], [])
        controller = AIController()

        controller.take_loan_if_needed(company, False, ctx)
        second = controller.take_loan_if_needed(company, False, ctx)

        assert company.loans[0].principal == pytest.approx(200_000.0)
        assert second.annual_rate == pytest.approx(0.10)

    def test_small_loans_are_skipped(self):
        company = make_ai(cash=10_000.0)
        add_product(company, "Widgets", revenue=20_000.0)
        ctx = make_context([company], [])

        assert AIController().take_loan_if_needed(company, True, ctx) is None
        assert company.loans == []
        assert AIController().take_loan_if_needed(company, False, ctx) is None

    def test_minimum_applies_before_halving(self):
        company = make_ai(cash=10_000.0)
        add_product(company, "Widgets", revenue=40_000.0)
        ctx = make_context([company], [])

        # four quarters of revenue is 160k, so the halved 80k loan still goes ahead
        loan = AIController().take_loan_if_needed(company, False, ctx)

        assert loan.principal == pytest.approx(80_000.0)
        assert company.cash == pytest.approx(90_000.0)

    def test_big_tech_does_not_borrow_with_cash_above_cap_fraction(self):
        company = make_ai(tier="Big Tech", cash=5_000_000.0)
        company.market_cap = 10_000_000.0
        policy = CONFIG.ai.tiers["Big Tech"]
        assert not AIController._needs_loan(company, policy, liquidity=0.1)


class TestProductEntry:
    def test_entrant_discounts_weakest_and_siphons_leader(self):
        market = Market(name="Widgets", size=1_000_000.0, base_growth_rate=0.1)
        incumbent = make_ai(name="Incumbent")
        leader = add_product(incumbent, "Widgets", revenue=50_000.0, effectiveness=0.5)
        entrant = make_ai(name="Entrant", cash=1_000_000.0)
        ctx = make_context([incumbent, entrant], [market])

        product = AIController().open_new_product(entrant, market, 0.25, ctx)

        # entry cost is 5% of size for four quarters
        assert entrant.cash == pytest.approx(800_000.0)
        assert product.effectiveness == pytest.approx(0.3)
        assert product.revenue == pytest.approx(10_000.0)
        assert leader.revenue == pytest.approx(40_000.0)
        assert product.assigned_employees == {"r&d": 2, "q&a": 1, "marketing": 2}
        assert product in entrant.products.values()

    def test_entry_refused_beyond_cash_fraction(self):
        market = Market(name="Widgets", size=1_000_000.0, base_growth_rate=0.1)
        entrant = make_ai(cash=700_000.0)
        ctx = make_context([entrant], [market])

        assert AIController().open_new_product(entrant, market, 0.25, ctx) is None
        assert entrant.products == {}
        assert entrant.cash == 700_000.0

    def test_entry_refreshes_quality_ranks(self):
        market = Market(name="Widgets", size=1_000_000.0, base_growth_rate=0.1)
        leader_owner = make_ai(name="Leader")
        add_product(leader_owner, "Widgets", revenue=50_000.0, effectiveness=0.9)
        laggard_owner = make_ai(name="Laggard")
        laggard = add_product(laggard_owner, "Widgets", revenue=20_000.0, effectiveness=0.5)
        entrant = make_ai(name="Entrant", cash=1_000_000.0)
        ctx = make_context([leader_owner, laggard_owner, entrant], [market])
        assert ctx.quality_rank(laggard) == "Very Bad"

        product = AIController().open_new_product(entrant, market, 0.25, ctx)

        assert ctx.quality_rank(laggard) == "Moderate"
        assert ctx.quality_rank(product) == "Very Bad"


class TestAcquisitionBids:
    """Medium and larger tiers bid for the leader behind a weak product"""

    def setup_world(self, turn=12, buyer_cash=1e9):
        market = Market(name="Widgets", size=1_000_000.0, base_growth_rate=0.1)
        buyer = make_ai(name="Buyer", tier="Medium", cash=buyer_cash)
        add_product(buyer, "Widgets", effectiveness=0.1)
        target = make_ai(name="Target", cash=100_000.0)
        add_product(target, "Widgets", revenue=10_000.0, effectiveness=0.9)
        ctx = make_context([buyer, target], [market], turn=turn)
        return buyer, target, ctx

    def test_submits_offer(self):
        buyer, target, ctx = self.setup_world()

        submitted = AIController().attempt_acquisition(buyer, CONFIG.ai.tiers["Medium"], ctx)

        assert submitted
        assert len(ctx.pending_acquisitions) == 1
        assert ctx.pending_acquisitions[0].target_name == "Target"
        assert ctx.pending_acquisitions[0].buyer is buyer
        assert buyer.last_acquisition_turn == 12

    def test_too_early_in_game(self):
        buyer, _, ctx = self.setup_world(turn=11)
        assert not AIController().attempt_acquisition(buyer, CONFIG.ai.tiers["Medium"], ctx)

    def test_cooldown_between_bids(self):
        buyer, _, ctx = self.setup_world(turn=14)
        buyer.last_acquisition_turn = 10
        assert not AIController().attempt_acquisition(buyer, CONFIG.ai.tiers["Medium"], ctx)

    def test_target_already_pending(self):
        buyer, target, ctx = self.setup_world()
        ctx.submit_acquisition(ctx.player, target.name, 1.0)
        assert not AIController().attempt_acquisition(buyer, CONFIG.ai.tiers["Medium"], ctx)
        assert len(ctx.pending_acquisitions) == 1

    def test_startups_never_bid(self):
        buyer, _, ctx = self.setup_world()
        assert not AIController().attempt_acquisition(buyer, CONFIG.ai.tiers["Startup"], ctx)

    def test_cannot_afford(self):
        buyer, _, ctx = self.setup_world(buyer_cash=1.0)
        assert not AIController().attempt_acquisition(buyer, CONFIG.ai.tiers["Medium"], ctx)

    def test_offer_ends_the_turn_before_bonds(self):
        buyer, _, ctx = self.setup_world()

        AIController(ZeroRandom(0))._run_policy(buyer, CONFIG.ai.tiers["Medium"], ctx)

        assert len(ctx.pending_acquisitions) == 1
        assert buyer.bonds == []

    def test_bond_bought_when_no_offer_is_made(self):
        buyer, _, ctx = self.setup_world(turn=11)

        AIController(ZeroRandom(0))._run_policy(buyer, CONFIG.ai.tiers["Medium"], ctx)

        assert ctx.pending_acquisitions == []
        assert len(buyer.bonds) == 1


class TestBonds:
    """Idle cash goes into a bond on the tier's term and rate when the draw passes"""

    @pytest.mark.parametrize("tier, term, rate", [
        ("Startup", 2, 0.06),
        ("Medium", 4, 0.07),
        ("Large", 4, 0.07),
        ("Big Tech", 8, 0.08),
    ])
    def test_tier_term_and_rate(self, tier, term, rate):
        company = make_ai(tier=tier, cash=20_000_000.0, employees=0)
        ctx = make_context([company], [], rng=ZeroRandom(0))

        AIController(ZeroRandom(0))._run_policy(company, CONFIG.ai.tiers[tier], ctx)

        assert len(company.bonds) == 1
        bond = company.bonds[0]
        assert bond.term_quarters == term
        assert bond.annual_rate == pytest.approx(rate)
        # a quarter of cash is invested
        assert bond.principal == pytest.approx(5_000_000.0)
        assert company.cash == pytest.approx(15_000_000.0)
        assert f"Bot purchased a {term}-quarter bond" in ctx.competitor_news[-1]

    def test_failed_draw_keeps_cash(self):
        company = make_ai(tier="Medium", cash=20_000_000.0, employees=0)
        ctx = make_context([company], [])

        AIController(FixedRandom(0))._run_policy(company, CONFIG.ai.tiers["Medium"], ctx)

        assert company.bonds == []
        assert company.cash == 20_000_000.0

    def test_small_investment_is_skipped(self):
        company = make_ai(cash=300_000.0)
        ctx = make_context([company], [])

        # a quarter of 300k is under the 100k minimum
        assert AIController().buy_bond(company, 2, 0.06, ctx) is None
        assert company.bonds == []
        assert company.cash == 300_000.0
        assert len(ctx.competitor_news) == 0


class TestBankruptcy:
    def test_bankrupt_company_merges_into_largest(self):
        doomed = make_ai(name="Doomed", cash=-100.0, employees=4)
        doomed.negative_cash_quarters = 3
        add_product(doomed, "Widgets", product_name="Gizmo")
        giant = make_ai(name="Giant", cash=10.0, employees=1)
        giant.market_cap = 1_000_000.0
        ctx = make_context([doomed, giant], [])

        AIController().take_turn(doomed, ctx)

        assert ctx.ai_companies == [giant]
        assert giant.employees == 5
        assert giant.cash == 10.0
        assert giant.products["Gizmo"].owner_name == "Giant"
        assert "Doomed has gone BANKRUPT! All assets given to Giant." in ctx.competitor_news

    def test_bond_liquidation_avoids_bankruptcy(self):
        company = make_ai(cash=-100_000.0)
        company.negative_cash_quarters = 4
        company.bonds.append(Bond(principal=500_000.0, annual_rate=0.05, term_quarters=4))
        ctx = make_context([company], [])

        AIController().handle_bankruptcy(company, ctx)

        assert company.cash == pytest.approx(400_000.0)
        assert company.bonds == []
        assert ctx.ai_companies == [company]

    def test_player_receives_assets_when_largest(self):
        player = Company(name="Player", campuses=[CampusType("Garage", 0.0, 0.0, 10)])
        player.market_cap = 5.0
        doomed = make_ai(name="Doomed", cash=-1.0, employees=2)
        ctx = make_context([doomed], [], player=player)

        AIController().handle_bankruptcy(doomed, ctx)

        assert ctx.ai_companies == []
        assert player.employees == 2


class TestAssignmentPartition:
    """Employees are split evenly, extras to the most effective products"""

    def test_remainder_goes_to_most_effective(self):
        markets = [Market(name="A", size=1.0, base_growth_rate=0.1),
                   Market(name="B", size=1.0, base_growth_rate=0.1)]
        company = make_ai(employees=7)
        strong = add_product(company, "A", effectiveness=2.0)
        weak = add_product(company, "B", effectiveness=1.0)
        ctx = make_context([company], markets)

        changes = AIController().adjust_employee_assignments(company, ctx)

        # both lead their market, so the Very Good split applies
        assert strong.assigned_employees == {"r&d": 0, "q&a": 1, "marketing": 3}
        assert weak.assigned_employees == {"r&d": 0, "q&a": 1, "marketing": 2}
        assert changes["Bot-A"] == {"r&d": 0, "q&a": 1, "marketing": 3}

    def test_weak_rank_leans_on_research(self):
        market = Market(name="A", size=1.0, base_growth_rate=0.1)
        rival = make_ai(name="Rival")
        add_product(rival, "A", effectiveness=5.0)
        company = make_ai(employees=10)
        product = add_product(company, "A", effectiveness=1.0)
        ctx = make_context([company, rival], [market])

        AIController().adjust_employee_assignments(company, ctx)

        assert product.assigned_employees == {"r&d": 6, "q&a": 1, "marketing": 3}

    def test_no_products(self):
        company = make_ai()
        ctx = make_context([company], [])
        assert AIController().adjust_employee_assignments(company, ctx) == {}
