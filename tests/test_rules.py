from types import SimpleNamespace

from championship.rules import (
    PLACEHOLDER,
    ResultRow,
    build_grid,
    cell_for_result,
    compute_standings,
    index_results,
    race_label,
    resolve_latest_results,
    seed_result_values,
)


def _driver(driver_id, name=None, car="GT3"):
    return SimpleNamespace(id=driver_id, name=name or f"Driver {driver_id}", car=car)


def _row(result_id, driver_id, race_id, round_number, **fields):
    return ResultRow(
        id=result_id,
        driver_id=driver_id,
        race_id=race_id,
        round_number=round_number,
        **fields,
    )


def test_resolver_picks_highest_round_regardless_of_order():
    r1 = _row(1, 7, 101, 1, cp_after=10)
    r2 = _row(2, 7, 102, 2, cp_after=20)
    r3 = _row(3, 7, 103, 3, cp_after=30)
    for ordering in ([r1, r2, r3], [r3, r1, r2], [r2, r3, r1]):
        latest = resolve_latest_results(ordering)
        assert latest[7] is r3


def test_resolver_keeps_one_row_per_driver_and_later_row_on_tie():
    a = _row(1, 1, 100, 0, cp_after=5)
    b = _row(2, 1, 200, 0, cp_after=6)
    c = _row(3, 2, 100, 4)
    rows = [a, b, c]
    latest = resolve_latest_results(rows)
    assert set(latest) == {1, 2}
    assert latest[1] is b
    assert rows == [a, b, c]


def test_drivers_without_results_are_zeroed_but_placed():
    drivers = [_driver(1), _driver(2)]
    standings = compute_standings(drivers, {})
    assert [s.place for s in standings] == [1, 2]
    for s in standings:
        assert (s.current_cp, s.current_pi, s.current_penalty, s.effective_pi) == (0, 0, 0, 0)


def test_higher_cp_gets_better_place():
    drivers = [_driver(1), _driver(2)]
    latest = {
        1: _row(1, 1, 10, 1, cp_after=30, pi_after=500),
        2: _row(2, 2, 10, 1, cp_after=50, pi_after=400),
    }
    standings = compute_standings(drivers, latest)
    by_driver = {s.driver_id: s for s in standings}
    assert by_driver[2].place < by_driver[1].place
    assert standings[0].driver_id == 2


def test_places_are_contiguous_and_ties_keep_input_order():
    drivers = [_driver(i) for i in range(1, 6)]
    latest = {
        1: _row(1, 1, 10, 1, cp_after=10),
        2: _row(2, 2, 10, 1, cp_after=40),
        3: _row(3, 3, 10, 1, cp_after=10),
        5: _row(5, 5, 10, 1, cp_after=40),
    }
    standings = compute_standings(drivers, latest)
    assert [s.place for s in standings] == [1, 2, 3, 4, 5]
    assert [s.driver_id for s in standings] == [2, 5, 1, 3, 4]


def test_effective_pi_is_floored_at_zero():
    latest = {1: _row(1, 1, 10, 1, cp_after=0, pi_after=10, penalty_for_next=15)}
    standing = compute_standings([_driver(1)], latest)[0]
    assert standing.current_pi == 10
    assert standing.current_penalty == 15
    assert standing.effective_pi == 0


def test_effective_pi_subtracts_penalty():
    latest = {1: _row(1, 1, 10, 1, cp_after=90, pi_after=50, penalty_for_next=5)}
    standing = compute_standings([_driver(1)], latest)[0]
    assert standing.current_cp == 90
    assert standing.effective_pi == 45


def test_compute_standings_does_not_mutate_drivers():
    drivers = [_driver(1), _driver(2)]
    latest = {2: _row(1, 2, 10, 1, cp_after=5)}
    compute_standings(drivers, latest)
    assert [d.id for d in drivers] == [1, 2]
    assert not hasattr(drivers[0], "place")


def test_cell_delta_and_placeholder():
    row = _row(9, 1, 10, 1, cp_before=100, cp_after=120, pi_before=50, pi_after=45,
               penalty_before=0, penalty_for_next=3)
    cell = cell_for_result(10, 1, row)
    assert cell.delta_cp == 20
    assert cell.delta_pi == -5
    assert cell.delta_penalty == 3
    assert cell.display == "20 | -5 | 3"
    assert cell.raw is None and cell.result_id is None

    empty = cell_for_result(10, 2, None)
    assert empty.empty
    assert empty.display == PLACEHOLDER
    assert empty.delta_cp is None


def test_missing_after_values_default_to_before_values():
    row = _row(9, 1, 10, 1, cp_before=100, pi_before=40, penalty_before=2)
    cell = cell_for_result(10, 1, row)
    assert (cell.delta_cp, cell.delta_pi, cell.delta_penalty) == (0, 0, 0)
    assert (cell.cp_before, cell.pi_before, cell.penalty_before) == (100, 40, 2)


def test_editable_cell_exposes_raw_fields():
    row = _row(9, 1, 10, 1, cp_before=1, pi_before=2, penalty_before=3,
               cp_after=4, pi_after=5, penalty_for_next=None)
    cell = cell_for_result(10, 1, row, editable=True)
    assert cell.result_id == 9
    assert cell.raw == {
        "cp_before": 1,
        "pi_before": 2,
        "penalty_before": 3,
        "cp_after": 4,
        "pi_after": 5,
        "penalty_for_next": None,
    }


def test_build_grid_follows_race_and_standings_order():
    drivers = [_driver(1), _driver(2)]
    rows = [
        _row(1, 1, 10, 1, cp_before=0, cp_after=10),
        _row(2, 2, 10, 1, cp_before=0, cp_after=30),
        _row(3, 2, 20, 2, cp_before=30, cp_after=35),
    ]
    standings = compute_standings(drivers, resolve_latest_results(rows))
    races = [
        SimpleNamespace(id=10, round_number=1, name="Opening Night"),
        SimpleNamespace(id=20, round_number=2, name=None),
    ]
    grid = build_grid(standings, races, index_results(rows))

    assert [r.label for r in grid] == ["Opening Night", "Race 2"]
    assert [c.driver_id for c in grid[0].cells] == [2, 1]
    assert grid[0].cells[0].delta_cp == 30
    assert grid[1].cells[0].delta_cp == 5
    assert grid[1].cells[1].empty


def test_race_label_default():
    assert race_label(None, 4) == "Race 4"
    assert race_label("", 4) == "Race 4"
    assert race_label("Finale", 4) == "Finale"


def test_seed_from_prior_result_carries_after_values_forward():
    prior = _row(1, 1, 10, 1, cp_before=80, pi_before=40, penalty_before=0,
                 cp_after=100, pi_after=50, penalty_for_next=5)
    values = seed_result_values(prior)
    assert (
        values.cp_before,
        values.pi_before,
        values.penalty_before,
        values.cp_after,
        values.pi_after,
        values.penalty_for_next,
    ) == (100, 50, 5, 100, 50, 5)


def test_seed_without_prior_result_is_all_zero():
    values = seed_result_values(None)
    assert (
        values.cp_before,
        values.pi_before,
        values.penalty_before,
        values.cp_after,
        values.pi_after,
        values.penalty_for_next,
    ) == (0, 0, 0, 0, 0, 0)
