import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from commands import CommandResult, PlayerCommands
from config import CONFIG, load_env_overrides
from db_writer import make_snapshot_sink
from economy import Economy
from models import SnapshotError, campus_to_dict

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

load_env_overrides()

app = FastAPI(title="Technopoly Backend", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Request Models ----------

class NewGameRequest(BaseModel):
    seed: Optional[int] = None
    start_year: Optional[int] = None
    db_path: Optional[str] = Field(None, description="sqlite file receiving per-turn snapshots")


class StepRequest(BaseModel):
    turns: int = Field(1, ge=1, le=400)


class FoundCompanyRequest(BaseModel):
    company_name: str
    market_name: str
    product_name: str


class LaunchProductRequest(BaseModel):
    market_name: str
    product_name: str


class AssignmentRequest(BaseModel):
    product_name: str
    assignments: Dict[str, int]


class HeadcountRequest(BaseModel):
    count: int


class CampusRequest(BaseModel):
    campus_name: str


class LoanRequest(BaseModel):
    amount: float
    term_months: int
    annual_rate: float


class BondRequest(BaseModel):
    amount: float
    term_quarters: int
    annual_rate: float


class AcquisitionRequest(BaseModel):
    target_name: str
    price: Optional[float] = None


# ---------- Simulation Manager ----------

class SimulationManager:
    def __init__(self):
        self.economy: Optional[Economy] = None
        self.commands: Optional[PlayerCommands] = None

    def initialize(self, seed: Optional[int] = None, start_year: Optional[int] = None,
                   db_path: Optional[str] = None) -> Economy:
        sink = make_snapshot_sink(db_path) if db_path else None
        seed = seed if seed is not None else CONFIG.seed
        logger.info(f"Initializing game (seed={seed}, start_year={start_year})")
        self.economy = Economy(seed=seed, start_year=start_year, snapshot_sink=sink)
        self.commands = PlayerCommands(self.economy)
        return self.economy

    def restore(self, snapshot: Dict[str, Any]) -> Economy:
        self.economy = Economy.from_dict(snapshot, seed=CONFIG.seed)
        self.commands = PlayerCommands(self.economy)
        logger.info(f"Restored game at turn {self.economy.turn}")
        return self.economy

    def require_economy(self) -> Economy:
        if self.economy is None:
            # Auto-initialize if no game was created yet
            self.initialize()
        return self.economy

    def require_commands(self) -> PlayerCommands:
        self.require_economy()
        return self.commands

    def step(self, turns: int = 1) -> int:
        economy = self.require_economy()
        played = 0
        for _ in range(turns):
            if economy.game_over:
                break
            economy.step()
            played += 1
        return played

    def summary(self) -> Dict[str, Any]:
        economy = self.require_economy()
        year, quarter = economy.current_date()
        shares = economy.market_cap_shares()
        return {
            "turn": economy.turn,
            "year": year,
            "quarter": quarter,
            "game_over": economy.game_over,
            "outcome": economy.outcome,
            "player": _company_summary(economy.player, shares),
            "ai_companies": [_company_summary(c, shares) for c in economy.ai_companies],
            "markets": [
                {
                    "name": m.name,
                    "size": m.size,
                    "growth_rate": m.growth_rate,
                    "growth_category": m.growth_category(),
                    "in_recession": m.is_in_recession,
                }
                for m in economy.markets
            ],
            "pending_acquisitions": [p.to_dict() for p in economy.pending_acquisitions],
        }

    def news(self) -> Dict[str, List[str]]:
        economy = self.require_economy()
        return {
            "public": list(economy.public_news),
            "competitors": list(economy.competitor_news),
            "events": economy.event_feed(),
        }


def _company_summary(company, shares: Dict[str, float]) -> Dict[str, Any]:
    return {
        "name": company.name,
        "tier": company.tier,
        "cash": company.cash,
        "employees": company.employees,
        "capacity": None if company.employee_capacity() == float("inf") else company.employee_capacity(),
        "market_cap": company.market_cap,
        "market_cap_share": shares.get(company.name, 0.0),
        "negative_cash_quarters": company.negative_cash_quarters,
        "campuses": [campus_to_dict(c) for c in company.campuses],
        "products": {
            name: {
                "market": p.market_name,
                "revenue": p.revenue,
                "effectiveness": p.effectiveness,
                "assigned_employees": dict(p.assigned_employees),
            }
            for name, p in company.products.items()
        },
        "loans": [loan.to_dict() | {"monthly_payment": loan.monthly_payment} for loan in company.loans],
        "bonds": [bond.to_dict() for bond in company.bonds],
    }


def _command_response(result: CommandResult) -> Dict[str, Any]:
    if not result.success:
        raise HTTPException(status_code=400, detail=result.to_dict())
    return result.to_dict()


manager = SimulationManager()


# ---------- Endpoints ----------

@app.post("/games")
def new_game(req: NewGameRequest):
    manager.initialize(seed=req.seed, start_year=req.start_year, db_path=req.db_path)
    return manager.summary()


@app.get("/state")
def get_state():
    return manager.summary()


@app.post("/step")
def step(req: StepRequest):
    played = manager.step(req.turns)
    return {"turns_played": played, **manager.summary()}


@app.get("/news")
def get_news():
    return manager.news()


@app.get("/campuses")
def list_campuses():
    return [campus_to_dict(c) for c in CONFIG.campus_catalog]


@app.get("/acquisitions/quote/{target_name}")
def quote_acquisition(target_name: str):
    price = manager.require_commands().quote_acquisition(target_name)
    if price is None:
        raise HTTPException(status_code=404, detail=f"Unknown company '{target_name}'")
    return {"target_name": target_name, "price": price}


@app.post("/commands/found")
def found_company(req: FoundCompanyRequest):
    return _command_response(manager.require_commands().found_company(
        req.company_name, req.market_name, req.product_name))


@app.post("/commands/launch")
def launch_product(req: LaunchProductRequest):
    return _command_response(manager.require_commands().launch_product(
        req.market_name, req.product_name))


@app.post("/commands/assign")
def reassign_employees(req: AssignmentRequest):
    return _command_response(manager.require_commands().reassign_employees(
        req.product_name, req.assignments))


@app.post("/commands/hire")
def hire(req: HeadcountRequest):
    return _command_response(manager.require_commands().hire(req.count))


@app.post("/commands/fire")
def fire(req: HeadcountRequest):
    return _command_response(manager.require_commands().fire(req.count))


@app.post("/commands/campus")
def buy_campus(req: CampusRequest):
    return _command_response(manager.require_commands().buy_campus(req.campus_name))


@app.post("/commands/loan")
def take_loan(req: LoanRequest):
    return _command_response(manager.require_commands().take_loan(
        req.amount, req.term_months, req.annual_rate))


@app.post("/commands/bond")
def buy_bond(req: BondRequest):
    return _command_response(manager.require_commands().buy_bond(
        req.amount, req.term_quarters, req.annual_rate))


@app.post("/commands/acquire")
def initiate_acquisition(req: AcquisitionRequest):
    return _command_response(manager.require_commands().initiate_acquisition(
        req.target_name, req.price))


@app.get("/snapshot")
def export_snapshot():
    return manager.require_economy().to_dict()


@app.post("/snapshot")
def restore_snapshot(snapshot: Dict[str, Any]):
    try:
        manager.restore(snapshot)
    except SnapshotError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return manager.summary()


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()
    logger.info("WebSocket connected")

    try:
        while True:
            data = await websocket.receive_json()
            command = data.get("command")

            if command == "SETUP":
                manager.initialize(seed=data.get("seed"), start_year=data.get("start_year"))
                await websocket.send_json({"type": "SETUP_COMPLETE", "state": manager.summary()})
            elif command == "STEP":
                played = manager.step(int(data.get("turns", 1)))
                await websocket.send_json({
                    "type": "STATE",
                    "turns_played": played,
                    "state": manager.summary(),
                    "news": manager.news(),
                })
            elif command == "STATE":
                await websocket.send_json({"type": "STATE", "state": manager.summary()})
            else:
                await websocket.send_json({"type": "ERROR", "detail": f"Unknown command {command!r}"})

    except WebSocketDisconnect:
        logger.info("Client disconnected")
