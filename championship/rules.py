from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple


PLACEHOLDER = "-"
CellKey = Tuple[int, int]


@dataclass(frozen=True)
class ResultRow:
    """A stored result annotated with the round number of its race."""

    id: int
    driver_id: int
    race_id: int
    round_number: int = 0
    cp_before: Optional[int] = 0
    pi_before: Optional[int] = 0
    penalty_before: Optional[int] = 0
    cp_after: Optional[int] = None
    pi_after: Optional[int] = None
    penalty_for_next: Optional[int] = None


@dataclass(frozen=True)
class DriverStanding:
    driver_id: int
    name: str
    car: str
    current_cp: int
    current_pi: int
    current_penalty: int
    effective_pi: int
    place: int


@dataclass(frozen=True)
class SeedValues:
    cp_before: int
    pi_before: int
    penalty_before: int
    cp_after: int
    pi_after: int
    penalty_for_next: int


@dataclass(frozen=True)
class GridCell:
    race_id: int
    driver_id: int
    empty: bool
    display: str
    delta_cp: Optional[int] = None
    delta_pi: Optional[int] = None
    delta_penalty: Optional[int] = None
    cp_before: Optional[int] = None
    pi_before: Optional[int] = None
    penalty_before: Optional[int] = None
    # Only filled for editable (admin) grids.
    result_id: Optional[int] = None
    raw: Optional[Dict[str, Optional[int]]] = None


@dataclass(frozen=True)
class GridRow:
    race_id: int
    round_number: int
    label: str
    cells: Tuple[GridCell, ...]


def _or_zero(value: Optional[int]) -> int:
    return 0 if value is None else int(value)


def race_label(name: Optional[str], round_number: int) -> str:
    return name if name else f"Race {round_number}"


def resolve_latest_results(rows: Iterable[ResultRow]) -> Dict[int, ResultRow]:
    """
    Pick one row per driver: the one from the highest round number.
    On equal round numbers the row seen later wins.
    """
    latest: Dict[int, ResultRow] = {}
    for row in rows:
        current = latest.get(row.driver_id)
        if current is None or _or_zero(row.round_number) >= _or_zero(current.round_number):
            latest[row.driver_id] = row
    return latest


def compute_standings(
    drivers: Sequence[Any],
    latest_by_driver: Mapping[int, ResultRow],
) -> List[DriverStanding]:
    """
    Rank drivers by current CP, highest first.
    Penalty for next race reduces PI (floored at zero), not CP.
    Equal CP keeps the incoming driver order.
    """
    scored = []
    for driver in drivers:
        latest = latest_by_driver.get(driver.id)
        if latest is None:
            cp, pi, penalty = 0, 0, 0
        else:
            cp = _or_zero(latest.cp_after)
            pi = _or_zero(latest.pi_after)
            penalty = _or_zero(latest.penalty_for_next)
        scored.append((driver, cp, pi, penalty))

    scored.sort(key=lambda item: -item[1])

    return [
        DriverStanding(
            driver_id=driver.id,
            name=driver.name,
            car=getattr(driver, "car", None) or "",
            current_cp=cp,
            current_pi=pi,
            current_penalty=penalty,
            effective_pi=max(0, pi - penalty),
            place=place,
        )
        for place, (driver, cp, pi, penalty) in enumerate(scored, start=1)
    ]


def index_results(rows: Iterable[ResultRow]) -> Dict[CellKey, ResultRow]:
    return {(row.driver_id, row.race_id): row for row in rows}


def cell_for_result(
    race_id: int,
    driver_id: int,
    row: Optional[ResultRow],
    editable: bool = False,
) -> GridCell:
    if row is None:
        return GridCell(race_id=race_id, driver_id=driver_id, empty=True, display=PLACEHOLDER)

    cp_before = _or_zero(row.cp_before)
    pi_before = _or_zero(row.pi_before)
    penalty_before = _or_zero(row.penalty_before)

    # A missing after-value means the race changed nothing.
    cp_after = cp_before if row.cp_after is None else row.cp_after
    pi_after = pi_before if row.pi_after is None else row.pi_after
    penalty_next = penalty_before if row.penalty_for_next is None else row.penalty_for_next

    delta_cp = cp_after - cp_before
    delta_pi = pi_after - pi_before
    delta_penalty = penalty_next - penalty_before

    raw = None
    if editable:
        raw = {
            "cp_before": row.cp_before,
            "pi_before": row.pi_before,
            "penalty_before": row.penalty_before,
            "cp_after": row.cp_after,
            "pi_after": row.pi_after,
            "penalty_for_next": row.penalty_for_next,
        }

    return GridCell(
        race_id=race_id,
        driver_id=driver_id,
        empty=False,
        display=f"{delta_cp} | {delta_pi} | {delta_penalty}",
        delta_cp=delta_cp,
        delta_pi=delta_pi,
        delta_penalty=delta_penalty,
        cp_before=cp_before,
        pi_before=pi_before,
        penalty_before=penalty_before,
        result_id=row.id if editable else None,
        raw=raw,
    )


def build_grid(
    standings: Sequence[DriverStanding],
    races: Sequence[Any],
    results_by_cell: Mapping[CellKey, ResultRow],
    editable: bool = False,
) -> List[GridRow]:
    """
    One row per race (in the given order), one cell per ranked driver.
    """
    grid: List[GridRow] = []
    for race in races:
        cells = tuple(
            cell_for_result(
                race.id,
                standing.driver_id,
                results_by_cell.get((standing.driver_id, race.id)),
                editable=editable,
            )
            for standing in standings
        )
        grid.append(
            GridRow(
                race_id=race.id,
                round_number=race.round_number,
                label=race_label(race.name, race.round_number),
                cells=cells,
            )
        )
    return grid


def seed_result_values(prior: Optional[ResultRow]) -> SeedValues:
    """
    Starting values for a driver's result in a newly created race.
    The new race opens where the prior one closed, with a zero delta.
    """
    if prior is None:
        return SeedValues(0, 0, 0, 0, 0, 0)

    cp_before = _or_zero(prior.cp_before)
    pi_before = _or_zero(prior.pi_before)
    penalty_before = _or_zero(prior.penalty_before)
    cp = cp_before if prior.cp_after is None else prior.cp_after
    pi = pi_before if prior.pi_after is None else prior.pi_after
    penalty = penalty_before if prior.penalty_for_next is None else prior.penalty_for_next
    return SeedValues(
        cp_before=cp,
        pi_before=pi,
        penalty_before=penalty,
        cp_after=cp,
        pi_after=pi,
        penalty_for_next=penalty,
    )
