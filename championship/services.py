from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Optional

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from championship.models import Admin, Championship, Driver, Race, Result, RevokedToken, User
from championship.rules import (
    DriverStanding,
    GridRow,
    ResultRow,
    build_grid,
    compute_standings,
    index_results,
    race_label,
    resolve_latest_results,
    seed_result_values,
)
from championship.security import hash_password, verify_password


logger = logging.getLogger(__name__)

SCORE_FIELDS = (
    "cp_before",
    "pi_before",
    "penalty_before",
    "cp_after",
    "pi_after",
    "penalty_for_next",
)


@dataclass(frozen=True)
class RaceHeader:
    id: int
    round_number: int
    label: str
    date: Optional[str]


@dataclass(frozen=True)
class StandingsSnapshot:
    championship_id: int
    championship_name: str
    standings: tuple[DriverStanding, ...]
    races: tuple[RaceHeader, ...]
    grid: tuple[GridRow, ...]
    editable: bool

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def get_or_404(db: Session, model: Any, obj_id: int, label: str):
    obj = db.get(model, obj_id)
    if not obj:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return obj


def get_championship_or_404(db: Session, championship_id: int) -> Championship:
    return get_or_404(db, Championship, championship_id, "Championship")


def get_driver_or_404(db: Session, driver_id: int) -> Driver:
    return get_or_404(db, Driver, driver_id, "Driver")


def get_race_or_404(db: Session, race_id: int) -> Race:
    return get_or_404(db, Race, race_id, "Race")


def get_result_or_404(db: Session, result_id: int) -> Result:
    return get_or_404(db, Result, result_id, "Result")


def driver_summary(driver: Driver) -> dict[str, Any]:
    return {
        "id": driver.id,
        "championship_id": driver.championship_id,
        "name": driver.name,
        "car": driver.car,
        "active": driver.active,
    }


def race_summary(race: Race) -> dict[str, Any]:
    return {
        "id": race.id,
        "championship_id": race.championship_id,
        "round_number": race.round_number,
        "name": race.name,
        "label": race_label(race.name, race.round_number),
        "date": race.date,
    }


def race_header(race: Race) -> RaceHeader:
    return RaceHeader(
        id=race.id,
        round_number=race.round_number,
        label=race_label(race.name, race.round_number),
        date=race.date.isoformat() if race.date else None,
    )


def result_summary(result: Result) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": result.id,
        "driver_id": result.driver_id,
        "race_id": result.race_id,
    }
    for field in SCORE_FIELDS:
        payload[field] = getattr(result, field)
    return payload


# --- championships / drivers / races ---


def create_championship(db: Session, name: str) -> Championship:
    name = name.strip()
    existing = db.scalar(select(Championship).where(Championship.name == name))
    if existing:
        raise HTTPException(status_code=400, detail="Championship name already exists")
    championship = Championship(name=name)
    db.add(championship)
    db.flush()
    return championship


def list_drivers(db: Session, championship_id: int, include_inactive: bool = False) -> list[Driver]:
    conditions = [Driver.championship_id == championship_id]
    if not include_inactive:
        conditions.append(Driver.active.is_(True))
    return list(db.scalars(select(Driver).where(*conditions).order_by(Driver.id.asc())).all())


def create_driver(
    db: Session,
    championship_id: int,
    name: str,
    car: str = "",
    active: bool = True,
) -> Driver:
    get_championship_or_404(db, championship_id)
    driver = Driver(
        championship_id=championship_id,
        name=name.strip(),
        car=(car or "").strip(),
        active=active,
    )
    db.add(driver)
    db.flush()
    logger.info("Created driver %s (%s) in championship %s", driver.id, driver.name, championship_id)
    return driver


def update_driver(
    db: Session,
    driver_id: int,
    name: Optional[str] = None,
    car: Optional[str] = None,
    active: Optional[bool] = None,
) -> Driver:
    driver = get_driver_or_404(db, driver_id)
    if name is not None:
        driver.name = name.strip()
    if car is not None:
        driver.car = car.strip()
    if active is not None:
        driver.active = active
    return driver


def delete_driver(db: Session, driver_id: int) -> None:
    driver = get_driver_or_404(db, driver_id)
    db.delete(driver)
    logger.info("Deleted driver %s and their results", driver_id)


def list_races(db: Session, championship_id: int) -> list[Race]:
    return list(
        db.scalars(
            select(Race)
            .where(Race.championship_id == championship_id)
            .order_by(Race.round_number.asc())
        ).all()
    )


def fetch_result_rows(db: Session, championship_id: int) -> list[ResultRow]:
    """
    Every result of the championship's drivers, tagged with its race round.
    Rows whose race cannot be found get round 0.
    """
    rows = db.execute(
        select(Result, Race.round_number)
        .join(Driver, Driver.id == Result.driver_id)
        .outerjoin(Race, Race.id == Result.race_id)
        .where(Driver.championship_id == championship_id)
        .order_by(Result.id.asc())
    ).all()
    return [
        ResultRow(
            id=result.id,
            driver_id=result.driver_id,
            race_id=result.race_id,
            round_number=round_number or 0,
            cp_before=result.cp_before,
            pi_before=result.pi_before,
            penalty_before=result.penalty_before,
            cp_after=result.cp_after,
            pi_after=result.pi_after,
            penalty_for_next=result.penalty_for_next,
        )
        for result, round_number in rows
    ]


def create_race(
    db: Session,
    championship_id: int,
    round_number: int,
    name: Optional[str] = None,
    race_date: Optional[date] = None,
) -> tuple[Race, int]:
    """
    Create a race and seed one result per active driver, carrying forward
    each driver's latest earlier result. Returns the race and seeded count.
    """
    get_championship_or_404(db, championship_id)
    existing = db.scalar(
        select(Race).where(
            Race.championship_id == championship_id,
            Race.round_number == round_number,
        )
    )
    if existing:
        raise HTTPException(status_code=400, detail="Round number already exists in this championship")

    earlier = [row for row in fetch_result_rows(db, championship_id) if row.round_number < round_number]
    prior_by_driver = resolve_latest_results(earlier)

    race = Race(
        championship_id=championship_id,
        round_number=round_number,
        name=(name or "").strip() or None,
        date=race_date,
    )
    db.add(race)
    db.flush()

    seeded = 0
    for driver in list_drivers(db, championship_id):
        values = seed_result_values(prior_by_driver.get(driver.id))
        db.add(Result(driver_id=driver.id, race_id=race.id, **asdict(values)))
        seeded += 1
    db.flush()

    logger.info(
        "Created race %s (round %s) in championship %s with %d seeded results",
        race.id,
        round_number,
        championship_id,
        seeded,
    )
    return race, seeded


def delete_race(db: Session, race_id: int) -> None:
    race = get_race_or_404(db, race_id)
    db.delete(race)
    logger.info("Deleted race %s and its results", race_id)


def save_result(db: Session, result_id: int, values: dict[str, int]) -> Result:
    result = get_result_or_404(db, result_id)
    for field in SCORE_FIELDS:
        setattr(result, field, int(values[field]))
    db.flush()
    logger.info("Saved result %s (driver %s, race %s)", result.id, result.driver_id, result.race_id)
    return result


def result_championship_id(db: Session, result: Result) -> int:
    driver = get_driver_or_404(db, result.driver_id)
    return driver.championship_id


# --- standings pipeline ---


def build_snapshot(db: Session, championship_id: int, editable: bool = False) -> StandingsSnapshot:
    """
    fetch -> resolve latest -> rank -> grid, from scratch on every call.
    """
    championship = get_championship_or_404(db, championship_id)
    drivers = list_drivers(db, championship_id)
    races = list_races(db, championship_id)
    rows = fetch_result_rows(db, championship_id)

    standings = compute_standings(drivers, resolve_latest_results(rows))
    grid = build_grid(standings, races, index_results(rows), editable=editable)
    return StandingsSnapshot(
        championship_id=championship.id,
        championship_name=championship.name,
        standings=tuple(standings),
        races=tuple(race_header(race) for race in races),
        grid=tuple(grid),
        editable=editable,
    )


def standings_table(db: Session, championship_id: int) -> list[dict[str, Any]]:
    get_championship_or_404(db, championship_id)
    rows = fetch_result_rows(db, championship_id)
    standings = compute_standings(list_drivers(db, championship_id), resolve_latest_results(rows))
    return [asdict(row) for row in standings]


# --- users / admins ---


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.scalar(select(User).where(User.email == email.strip().lower()))


def authenticate(db: Session, email: str, password: str) -> Optional[User]:
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user


def is_admin(db: Session, user_id: int) -> bool:
    return db.scalar(select(Admin.id).where(Admin.user_id == user_id)) is not None


def revoke_token(db: Session, jti: str) -> None:
    if not is_token_revoked(db, jti):
        db.add(RevokedToken(jti=jti))


def is_token_revoked(db: Session, jti: str) -> bool:
    return db.scalar(select(RevokedToken.id).where(RevokedToken.jti == jti)) is not None


def ensure_admin_user(db: Session, email: str, password: str) -> tuple[User, bool]:
    """
    Create the user if missing (or reset their password) and add them to
    the admin set. Returns the user and whether it was newly created.
    """
    email = email.strip().lower()
    user = get_user_by_email(db, email)
    created = user is None
    if user is None:
        user = User(email=email, hashed_password=hash_password(password))
        db.add(user)
        db.flush()
    else:
        user.hashed_password = hash_password(password)

    if not is_admin(db, user.id):
        db.add(Admin(user_id=user.id))
        db.flush()
    return user, created
