#Snapshot store: after every quarter the engine hands its full state to
#log_simulation_turn(), which keeps the JSON snapshot plus a small KPI row.

import json
import sqlite3
from typing import Callable, Dict, Optional

DEFAULT_DB_PATH = "technopoly.db"


#Function init_db: sets up the database and tables
def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    conn = sqlite3.connect(db_path)
    c = conn.cursor()
    c.execute("""
        CREATE TABLE IF NOT EXISTS kpis (
            turn INTEGER PRIMARY KEY,
            player_cash REAL,
            player_market_cap REAL,
            ai_company_count INTEGER,
            total_market_size REAL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)
    c.execute("""
        CREATE TABLE IF NOT EXISTS snapshots (
            turn INTEGER PRIMARY KEY,
            state TEXT NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)
    conn.commit()
    conn.close()


def log_simulation_turn(snapshot: Dict[str, object], db_path: str = DEFAULT_DB_PATH) -> None:
    """Upsert one turn's KPI row and full snapshot."""
    player = snapshot["player"]
    total_size = sum(m["size"] for m in snapshot["markets"])

    conn = sqlite3.connect(db_path)
    c = conn.cursor()
    c.execute("""
        INSERT OR REPLACE INTO kpis
            (turn, player_cash, player_market_cap, ai_company_count, total_market_size)
        VALUES (?, ?, ?, ?, ?)
    """, (snapshot["turn"], player["cash"], player["market_cap"],
          len(snapshot["ai_companies"]), total_size))
    c.execute("""
        INSERT OR REPLACE INTO snapshots (turn, state) VALUES (?, ?)
    """, (snapshot["turn"], json.dumps(snapshot)))
    conn.commit()
    conn.close()


def load_latest_snapshot(db_path: str = DEFAULT_DB_PATH) -> Optional[Dict[str, object]]:
    conn = sqlite3.connect(db_path)
    c = conn.cursor()
    c.execute("SELECT state FROM snapshots ORDER BY turn DESC LIMIT 1")
    row = c.fetchone()
    conn.close()
    if row is None:
        return None
    return json.loads(row[0])


def load_kpis(db_path: str = DEFAULT_DB_PATH) -> list:
    conn = sqlite3.connect(db_path)
    c = conn.cursor()
    c.execute("""
        SELECT turn, player_cash, player_market_cap, ai_company_count, total_market_size
        FROM kpis ORDER BY turn
    """)
    rows = c.fetchall()
    conn.close()
    return [
        {
            "turn": turn,
            "player_cash": cash,
            "player_market_cap": cap,
            "ai_company_count": count,
            "total_market_size": size,
        }
        for turn, cash, cap, count, size in rows
    ]


def make_snapshot_sink(db_path: str = DEFAULT_DB_PATH) -> Callable[[Dict[str, object]], None]:
    """Build an Economy snapshot sink writing to db_path (tables are created first)."""
    init_db(db_path)

    def sink(snapshot: Dict[str, object]) -> None:
        log_simulation_turn(snapshot, db_path)

    return sink
