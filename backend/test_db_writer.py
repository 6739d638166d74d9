"""
Tests for the sqlite snapshot store
"""

from db_writer import init_db, load_kpis, load_latest_snapshot, make_snapshot_sink
from economy import Economy


def test_empty_database_has_no_snapshot(tmp_path):
    db_path = str(tmp_path / "empty.db")
    init_db(db_path)
    assert load_latest_snapshot(db_path) is None
    assert load_kpis(db_path) == []


def test_sink_records_every_turn(tmp_path):
    db_path = str(tmp_path / "game.db")
    economy = Economy(seed=8, snapshot_sink=make_snapshot_sink(db_path))

    for _ in range(3):
        economy.step()

    kpis = load_kpis(db_path)
    assert [row["turn"] for row in kpis] == [0, 1, 2]
    assert kpis[-1]["ai_company_count"] == len(economy.ai_companies)

    latest = load_latest_snapshot(db_path)
    assert latest["turn"] == 2
    restored = Economy.from_dict(latest)
    assert restored.player.cash == latest["player"]["cash"]
