"""
Run a Technopoly game headless.

Founds a default player company, lets the AI roster play for a number of
quarters, and prints a per-quarter progress table. Snapshots can be written
to sqlite and a JSON summary is saved at the end.
"""

import argparse
import json
import logging
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np

from commands import PlayerCommands
from config import CONFIG, load_env_overrides
from db_writer import make_snapshot_sink
from economy import Economy
from finances import format_money
from models import Company


def create_game(
    seed: Optional[int] = None,
    company_name: Optional[str] = None,
    market_name: Optional[str] = None,
    product_name: str = "Flagship",
    db_path: Optional[str] = None,
) -> Tuple[Economy, PlayerCommands]:
    """Build an engine and found the player's company in it."""
    sink = make_snapshot_sink(db_path) if db_path else None
    economy = Economy(seed=seed, snapshot_sink=sink)
    commands = PlayerCommands(economy)

    result = commands.found_company(
        company_name or CONFIG.player.default_name,
        market_name or economy.markets[0].name,
        product_name,
    )
    if not result.success:
        raise ValueError(f"could not found player company: {result.error} ({result.message})")
    return economy, commands


def compute_company_stats(companies: List[Company]) -> Dict[str, float]:
    """Aggregate cash, market cap and headcount across the AI roster."""
    if not companies:
        return {"count": 0, "mean_cash": 0.0, "median_market_cap": 0.0, "total_employees": 0}

    cash = np.array([c.cash for c in companies], dtype=float)
    caps = np.array([c.market_cap for c in companies], dtype=float)
    employees = np.array([c.employees for c in companies], dtype=int)
    return {
        "count": len(companies),
        "mean_cash": float(cash.mean()),
        "median_market_cap": float(np.median(caps)),
        "total_employees": int(employees.sum()),
    }


def main(
    num_turns: int = 40,
    seed: Optional[int] = None,
    db_path: Optional[str] = None,
    output_tag: str = "default",
) -> Dict[str, object]:
    """Run the game for num_turns quarters (or until it ends)."""
    print("=" * 80)
    print(f"TECHNOPOLY SIMULATION ({num_turns} quarters, seed={seed})")
    print("=" * 80)
    print()

    if db_path:
        path = Path(db_path)
        if path.exists():
            path.unlink()
            print(f"Removed existing database: {db_path}")

    economy, _ = create_game(seed=seed, db_path=db_path)
    player = economy.player
    print(f"Player company: {player.name} in {next(iter(player.products.values())).market_name}")
    print()
    print("Quarter  | Player cash  | Player cap   | Share  | AI cos | Markets | Recession")
    print("-" * 80)

    start = time.time()
    for _ in range(num_turns):
        if economy.game_over:
            break
        year, quarter = economy.current_date()
        economy.step()
        share = economy.market_cap_shares().get(player.name, 0.0)
        recession = any(m.is_in_recession for m in economy.markets)
        print(f"{year} Q{quarter} | {format_money(player.cash):>12} | "
              f"{format_money(player.market_cap):>12} | {share:6.1%} | "
              f"{len(economy.ai_companies):6d} | {len(economy.markets):7d} | "
              f"{'yes' if recession else 'no'}")

    elapsed = time.time() - start
    print()
    print(f"Simulation finished after {economy.turn} quarters in {elapsed:.2f} seconds")
    if economy.game_over:
        print(f"Game over: {economy.outcome}")
    print()

    summary = {
        "turns_played": economy.turn,
        "game_over": economy.game_over,
        "outcome": economy.outcome,
        "player": {
            "name": player.name,
            "cash": player.cash,
            "market_cap": player.market_cap,
            "employees": player.employees,
        },
        "ai": compute_company_stats(economy.ai_companies),
        "market_cap_shares": economy.market_cap_shares(),
        "recent_news": list(economy.public_news)[-10:],
    }

    output_dir = Path("sample_data")
    output_dir.mkdir(exist_ok=True)
    summary_path = output_dir / f"technopoly_{output_tag}_summary.json"
    with open(summary_path, "w") as f:
        json.dump(summary, f, indent=2)
    print(f"Summary saved to: {summary_path}")

    print()
    print("Latest events:")
    for line in economy.event_feed():
        print(f"  {line}")
    return summary


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run a headless Technopoly game.")
    parser.add_argument("--turns", type=int, default=40, help="Number of quarters to play")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for a reproducible run")
    parser.add_argument("--db", type=str, default=None, help="sqlite file for per-quarter snapshots")
    parser.add_argument("--tag", type=str, default="default", help="Output tag for the summary filename")
    parser.add_argument("--verbose", action="store_true", help="Log engine events at INFO level")
    args = parser.parse_args()

    config = load_env_overrides()
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    main(
        num_turns=args.turns,
        seed=args.seed if args.seed is not None else config.seed,
        db_path=args.db,
        output_tag=args.tag,
    )
