from __future__ import annotations

import logging
from collections import defaultdict
from contextlib import closing, contextmanager
from typing import Any, Iterator, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from championship.config import settings
from championship.database import Base, SessionLocal, engine, get_db
from championship.deps import Identity, get_current_identity, get_optional_identity, require_admin
from championship.logging_config import setup_logging
from championship.models import Championship
from championship.schemas import (
    ChampionshipCreate,
    DriverCreate,
    DriverUpdate,
    LoginRequest,
    RaceCreate,
    ResultUpdate,
    TokenOut,
    UserOut,
)
from championship.security import create_access_token
from championship.services import (
    authenticate,
    build_snapshot,
    create_championship,
    create_driver,
    create_race,
    delete_driver,
    delete_race,
    driver_summary,
    get_championship_or_404,
    get_driver_or_404,
    get_race_or_404,
    list_drivers,
    list_races,
    race_summary,
    result_championship_id,
    result_summary,
    revoke_token,
    save_result,
    standings_table,
    update_driver,
)


setup_logging(settings.LOG_LEVEL, json_format=settings.LOG_JSON)
logger = logging.getLogger(__name__)


class StandingsHub:
    def __init__(self) -> None:
        self._connections: dict[int, set[WebSocket]] = defaultdict(set)

    async def connect(self, championship_id: int, ws: WebSocket) -> None:
        await ws.accept()
        self._connections[championship_id].add(ws)

    def disconnect(self, championship_id: int, ws: WebSocket) -> None:
        if championship_id in self._connections and ws in self._connections[championship_id]:
            self._connections[championship_id].remove(ws)
            if not self._connections[championship_id]:
                del self._connections[championship_id]

    async def broadcast(self, championship_id: int, payload: dict[str, Any]) -> None:
        targets = list(self._connections.get(championship_id, set()))
        for ws in targets:
            try:
                await ws.send_json(payload)
            except Exception:
                logger.warning("Dropping standings listener for championship %s", championship_id)
                self.disconnect(championship_id, ws)


app = FastAPI(
    title="Championship Dashboard",
    version="1.0.0",
    description=(
        "Drivers, races and per-race CP / PI / penalty results with "
        "computed standings and a race-by-race grid."
    ),
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

hub = StandingsHub()


@app.on_event("startup")
def on_startup() -> None:
    Base.metadata.create_all(bind=engine)


@contextmanager
def store_write(db: Session, action: str) -> Iterator[None]:
    try:
        yield
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Store failure while trying to %s", action)
        raise HTTPException(status_code=500, detail=f"Could not {action}")


async def _publish(db: Session, championship_id: int) -> dict[str, Any]:
    snapshot = build_snapshot(db, championship_id)
    payload = {"type": "standings_update", **snapshot.as_dict()}
    await hub.broadcast(championship_id, payload)
    return payload


def _championship_summary(db: Session, championship: Championship) -> dict[str, Any]:
    return {
        "id": championship.id,
        "name": championship.name,
        "driver_count": len(list_drivers(db, championship.id)),
        "race_count": len(list_races(db, championship.id)),
    }


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


# --- auth ---


@app.post("/auth/login", response_model=TokenOut)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user = authenticate(db, payload.email, payload.password)
    if not user:
        logger.info("Failed login for %s", payload.email)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    token = create_access_token({"sub": str(user.id), "email": user.email})
    logger.info("User %s logged in", user.email)
    return TokenOut(access_token=token)


@app.post("/auth/logout")
def logout(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    with store_write(db, "sign out"):
        revoke_token(db, identity.claims["jti"])
    return {"status": "logged_out"}


@app.get("/auth/me", response_model=UserOut)
def me(identity: Identity = Depends(get_current_identity)):
    return UserOut(id=identity.user.id, email=identity.user.email, is_admin=identity.is_admin)


# --- championships ---


@app.post("/championships")
def add_championship(
    payload: ChampionshipCreate,
    db: Session = Depends(get_db),
    _: Identity = Depends(require_admin),
):
    with store_write(db, "create championship"):
        championship = create_championship(db, payload.name)
    return _championship_summary(db, championship)


@app.get("/championships")
def get_championships(db: Session = Depends(get_db)):
    rows = db.scalars(select(Championship).order_by(Championship.id.asc())).all()
    return [_championship_summary(db, c) for c in rows]


@app.get("/championships/{championship_id}")
def get_championship(championship_id: int, db: Session = Depends(get_db)):
    championship = get_championship_or_404(db, championship_id)
    return _championship_summary(db, championship)


# --- drivers ---


@app.get("/championships/{championship_id}/drivers")
def get_drivers(
    championship_id: int,
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    get_championship_or_404(db, championship_id)
    return [driver_summary(d) for d in list_drivers(db, championship_id, include_inactive)]


@app.post("/championships/{championship_id}/drivers")
async def add_driver(
    championship_id: int,
    payload: DriverCreate,
    db: Session = Depends(get_db),
    _: Identity = Depends(require_admin),
):
    with store_write(db, "create driver"):
        driver = create_driver(db, championship_id, payload.name, payload.car, payload.active)
    await _publish(db, championship_id)
    return driver_summary(driver)


@app.patch("/drivers/{driver_id}")
async def edit_driver(
    driver_id: int,
    payload: DriverUpdate,
    db: Session = Depends(get_db),
    _: Identity = Depends(require_admin),
):
    with store_write(db, "update driver"):
        driver = update_driver(db, driver_id, payload.name, payload.car, payload.active)
    await _publish(db, driver.championship_id)
    return driver_summary(driver)


@app.delete("/drivers/{driver_id}")
async def remove_driver(
    driver_id: int,
    db: Session = Depends(get_db),
    _: Identity = Depends(require_admin),
):
    championship_id = get_driver_or_404(db, driver_id).championship_id
    with store_write(db, "delete driver"):
        delete_driver(db, driver_id)
    await _publish(db, championship_id)
    return {"deleted": driver_id}


# --- races ---


@app.get("/championships/{championship_id}/races")
def get_races(championship_id: int, db: Session = Depends(get_db)):
    get_championship_or_404(db, championship_id)
    return [race_summary(r) for r in list_races(db, championship_id)]


@app.post("/championships/{championship_id}/races")
async def add_race(
    championship_id: int,
    payload: RaceCreate,
    db: Session = Depends(get_db),
    _: Identity = Depends(require_admin),
):
    with store_write(db, "create race"):
        race, seeded = create_race(
            db,
            championship_id,
            payload.round_number,
            name=payload.name,
            race_date=payload.race_date,
        )
    await _publish(db, championship_id)
    return {**race_summary(race), "seeded_results": seeded}


@app.delete("/races/{race_id}")
async def remove_race(
    race_id: int,
    db: Session = Depends(get_db),
    _: Identity = Depends(require_admin),
):
    championship_id = get_race_or_404(db, race_id).championship_id
    with store_write(db, "delete race"):
        delete_race(db, race_id)
    await _publish(db, championship_id)
    return {"deleted": race_id}


# --- results / standings ---


@app.put("/results/{result_id}")
async def put_result(
    result_id: int,
    payload: ResultUpdate,
    db: Session = Depends(get_db),
    _: Identity = Depends(require_admin),
):
    with store_write(db, "save result"):
        result = save_result(db, result_id, payload.model_dump())
    championship_id = result_championship_id(db, result)
    await _publish(db, championship_id)
    snapshot = build_snapshot(db, championship_id, editable=True)
    return {"result": result_summary(result), **snapshot.as_dict()}


@app.get("/championships/{championship_id}/standings")
def get_standings(championship_id: int, db: Session = Depends(get_db)):
    championship = get_championship_or_404(db, championship_id)
    return {
        "championship_id": championship.id,
        "championship_name": championship.name,
        "standings": standings_table(db, championship_id),
    }


@app.get("/championships/{championship_id}/grid")
def get_grid(
    championship_id: int,
    db: Session = Depends(get_db),
    identity: Optional[Identity] = Depends(get_optional_identity),
):
    editable = identity is not None and identity.is_admin
    return build_snapshot(db, championship_id, editable=editable).as_dict()


@app.websocket("/ws/championships/{championship_id}/standings")
async def standings_ws(websocket: WebSocket, championship_id: int):
    # Session is released before the socket starts idling.
    with closing(SessionLocal()) as db:
        snapshot = build_snapshot(db, championship_id)
    await hub.connect(championship_id, websocket)
    try:
        await websocket.send_json({"type": "bootstrap", **snapshot.as_dict()})
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        hub.disconnect(championship_id, websocket)
