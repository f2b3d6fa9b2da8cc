import copy
from pathlib import Path
import random
import sys
from typing import Any, Dict, List

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))
from gridcsp import api, sat_unique  # noqa: E402
from gridcsp.puzzle_types import MalformedPuzzleError  # noqa: E402
from gridcsp.puzzles import get_plugin, kakuro, skyscrapers, slitherlink  # noqa: E402
from gridcsp.search import SearchStatus  # noqa: E402

SUDOKU_SOLUTION = [[1, 2, 3, 4], [3, 4, 1, 2], [2, 1, 4, 3], [4, 3, 2, 1]]


def _sudoku() -> Dict[str, Any]:
    givens = [row[:] for row in SUDOKU_SOLUTION]
    for r, c in ((0, 0), (1, 2), (2, 1), (3, 3), (0, 3)):
        givens[r][c] = 0
    return {"type": "sudoku", "size": {"rows": 4, "cols": 4}, "givens": givens}


def test_sudoku_row_duplicate_then_fixed() -> None:
    puzzle = _sudoku()
    state = [row[:] for row in SUDOKU_SOLUTION]
    state[0][0] = 2  # 1 行目に 2 が 2 つ
    assert not api.is_solved(puzzle, state)
    state[0][0] = 1
    assert api.is_solved(puzzle, state)


def test_is_solved_does_not_mutate_state() -> None:
    puzzle = _sudoku()
    state = [row[:] for row in SUDOKU_SOLUTION]
    before = copy.deepcopy(state)
    assert api.is_solved(puzzle, state) == api.is_solved(puzzle, state)
    assert state == before


def test_is_solved_rejects_partial_and_malformed() -> None:
    puzzle = _sudoku()
    partial = [row[:] for row in SUDOKU_SOLUTION]
    partial[2][2] = 0
    assert not api.is_solved(puzzle, partial)
    assert not api.is_solved(puzzle, [[1, 2], [3, 4]])
    assert not api.is_solved(puzzle, None)
    broken = dict(puzzle, size={"rows": 4})
    assert not api.is_solved(broken, SUDOKU_SOLUTION)
    assert not api.is_solved({"type": "unknown", "size": {"rows": 4, "cols": 4}}, [])


def test_sudoku_solve_and_count() -> None:
    puzzle = _sudoku()
    assert api.solve(puzzle) == SUDOKU_SOLUTION
    assert api.count_solutions(puzzle) == 1


def test_sudoku_empty_has_many_solutions() -> None:
    puzzle = {
        "type": "sudoku",
        "size": {"rows": 4, "cols": 4},
        "givens": [[0] * 4 for _ in range(4)],
    }
    assert api.count_solutions(puzzle, limit=2) == 2
    assert api.count_solutions(puzzle, limit=5) == 5


def test_solve_deterministic_for_seed() -> None:
    puzzle = {
        "type": "sudoku",
        "size": {"rows": 4, "cols": 4},
        "givens": [[0] * 4 for _ in range(4)],
    }
    first = api.solve(puzzle, seed=3)
    second = api.solve(puzzle, seed=3)
    assert first is not None
    assert first == second
    assert api.is_solved(puzzle, first)


def test_solve_with_state_falls_back_when_state_is_wrong() -> None:
    puzzle = _sudoku()
    state: List[List[int]] = [[0] * 4 for _ in range(4)]
    state[0][0] = 3  # 正解は 1
    outcome = api.solve_with_status(puzzle, state=state)
    assert outcome.status == SearchStatus.SOLVED
    assert outcome.solution == SUDOKU_SOLUTION
    # 正しい途中盤面はそのまま使われる
    state[0][0] = 1
    assert api.solve(puzzle, state=state) == SUDOKU_SOLUTION


def test_sudoku_malformed() -> None:
    puzzle = _sudoku()
    puzzle["givens"][0][1] = 9
    with pytest.raises(MalformedPuzzleError):
        api.solve(puzzle)


def test_hashi_two_islands() -> None:
    puzzle = {
        "type": "hashi",
        "size": {"rows": 3, "cols": 3},
        "islands": [{"r": 0, "c": 0, "count": 1}, {"r": 0, "c": 2, "count": 1}],
    }
    solution = api.solve(puzzle)
    assert solution == [{"a": [0, 0], "b": [0, 2], "count": 1}]
    assert api.count_solutions(puzzle) == 1
    assert api.is_solved(puzzle, solution)
    assert not api.is_solved(puzzle, [])


def test_hashi_crossing_rejected() -> None:
    puzzle = {
        "type": "hashi",
        "size": {"rows": 3, "cols": 3},
        "islands": [
            {"r": 1, "c": 0, "count": 1},
            {"r": 1, "c": 2, "count": 1},
            {"r": 0, "c": 1, "count": 1},
            {"r": 2, "c": 1, "count": 1},
        ],
    }
    # 橋が十字に交差するしかないので解はない
    assert api.count_solutions(puzzle) == 0
    state = [
        {"a": [1, 0], "b": [1, 2], "count": 1},
        {"a": [0, 1], "b": [2, 1], "count": 1},
    ]
    assert not api.is_solved(puzzle, state)


def test_hashi_isolated_island_is_malformed() -> None:
    puzzle = {
        "type": "hashi",
        "size": {"rows": 3, "cols": 3},
        "islands": [{"r": 0, "c": 0, "count": 1}, {"r": 1, "c": 1, "count": 1}],
    }
    with pytest.raises(MalformedPuzzleError):
        api.count_solutions(puzzle)


def test_slitherlink_empty_board_is_not_unique() -> None:
    puzzle = {
        "type": "slitherlink",
        "size": {"rows": 3, "cols": 3},
        "clues": [[None] * 3 for _ in range(3)],
    }
    count = api.count_solutions(puzzle, limit=2, timeout_s=10.0)
    assert count == 0 or count >= 2


def test_slitherlink_full_clues_solve() -> None:
    clues = [[2, 1, 2], [1, 0, 1], [2, 1, 2]]
    puzzle = {"type": "slitherlink", "size": {"rows": 3, "cols": 3}, "clues": clues}
    solution = api.solve(puzzle, timeout_s=10.0)
    assert solution is not None
    assert all(solution["horizontal"][0]) and all(solution["horizontal"][3])
    assert api.is_solved(puzzle, solution)
    assert api.count_solutions(puzzle, timeout_s=10.0) == 1


def test_slitherlink_sat_cut_limit_is_not_unique(monkeypatch: pytest.MonkeyPatch) -> None:
    """小ループの除去が上限に達した盤面は一意と見なさず、生成も止まらない"""
    monkeypatch.setattr(sat_unique, "MAX_LOOP_CUTS", 0)
    monkeypatch.setattr(slitherlink, "_REDUCE_TIMEOUT_S", 0.0)
    clues = [[None] * 3 for _ in range(3)]
    with pytest.raises(TimeoutError):
        sat_unique.is_unique(clues, 3, 3)
    assert slitherlink._unique(clues, 3, 3, 0.0) is False
    puzzle = api.generate("slitherlink", "5x5", seed=0, timeout_s=5.0)
    assert puzzle["type"] == "slitherlink"
    assert api.is_solved(puzzle, puzzle["solution"])


def test_hitori_embedded_solution() -> None:
    base = [[(r + c) % 5 + 1 for c in range(5)] for r in range(5)]
    marks = [[0] * 5 for _ in range(5)]
    grid = [row[:] for row in base]
    # 黒マスには同じ行の右隣 (左隣) の数字を写す
    for r, c, src in ((0, 0, 1), (2, 2, 3), (4, 4, 3)):
        marks[r][c] = 1
        grid[r][c] = base[r][src]
    puzzle = {"type": "hitori", "size": {"rows": 5, "cols": 5}, "grid": grid}
    assert api.is_solved(puzzle, marks)
    # (2,3) と (3,2) を黒にする別解もある
    assert api.count_solutions(puzzle) == 2
    found = api.solve(puzzle)
    assert found is not None
    assert api.is_solved(puzzle, found)
    # 重複のないマスを黒にしてはいけない
    wrong = copy.deepcopy(marks)
    wrong[0][2] = 1
    assert not api.is_solved(puzzle, wrong)


def test_hitori_generated_embedded_solution() -> None:
    plugin = get_plugin("hitori")
    opts = {"density": "normal", "blackRatio": None, "requireUnique": False}
    rng = random.Random(4)
    for _ in range(5):
        candidate = plugin.build_candidate(5, 5, opts, rng)
        if candidate is None:
            continue
        puzzle = {"type": "hitori", "size": {"rows": 5, "cols": 5}}
        puzzle.update(candidate.fields)
        assert api.is_solved(puzzle, candidate.solution)


def test_akari_clue_four() -> None:
    block = {"block": True, "clue": 4}
    grid = [[{} for _ in range(3)] for _ in range(3)]
    grid[1][1] = block
    puzzle = {"type": "akari", "size": {"rows": 3, "cols": 3}, "grid": grid}
    expected = [
        [False, True, False],
        [True, False, True],
        [False, True, False],
    ]
    assert api.solve(puzzle) == expected
    assert api.count_solutions(puzzle) == 1
    assert api.is_solved(puzzle, expected)
    # 電球同士が照らし合う
    wrong = copy.deepcopy(expected)
    wrong[0][0] = True
    assert not api.is_solved(puzzle, wrong)


def _kakuro() -> Dict[str, Any]:
    grid: List[List[Dict[str, Any]]] = [
        [{"block": True}, {"sumDown": 3}, {"sumDown": 4}],
        [{"sumRight": 3}, {}, {}],
        [{"sumRight": 4}, {}, {}],
    ]
    return {"type": "kakuro", "size": {"rows": 3, "cols": 3}, "grid": grid}


def test_kakuro_solve() -> None:
    puzzle = _kakuro()
    solution = api.solve(puzzle)
    assert solution == [[0, 0, 0], [0, 2, 1], [0, 1, 3]]
    assert api.count_solutions(puzzle) == 1
    assert api.is_solved(puzzle, solution)


def test_kakuro_short_run_is_malformed() -> None:
    puzzle = _kakuro()
    puzzle["grid"][2][2] = {"block": True}
    with pytest.raises(MalformedPuzzleError):
        api.solve(puzzle)


def test_kakuro_fallback_without_search(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(kakuro, "_fill_digits", lambda mask, rng: None)
    rows, cols = kakuro.clamp_size(15, 15)
    opts = {name: spec.default for name, spec in kakuro.OPTIONS.items()}
    candidate = kakuro.fallback(rows, cols, opts, random.Random(0))
    puzzle: Dict[str, Any] = {"type": "kakuro", "size": {"rows": rows, "cols": cols}}
    puzzle.update(candidate.fields)
    assert kakuro.is_solved(puzzle, candidate.solution)


def test_nurikabe_corner_islands() -> None:
    clues = [[1, -1, 1], [-1, -1, -1], [1, -1, 1]]
    puzzle = {"type": "nurikabe", "size": {"rows": 3, "cols": 3}, "clues": clues}
    expected = [[1, 0, 1], [0, 0, 0], [1, 0, 1]]
    assert api.solve(puzzle) == expected
    assert api.count_solutions(puzzle) == 1
    assert api.is_solved(puzzle, expected)


def test_nurikabe_overlapping_islands_fail() -> None:
    clues = [[1, 1, -1], [-1, -1, -1], [-1, -1, -1]]
    puzzle = {"type": "nurikabe", "size": {"rows": 3, "cols": 3}, "clues": clues}
    # 2 つのヒントが同じ島に入っている
    state = [[1, 1, 0], [0, 0, 0], [0, 0, 0]]
    assert not api.is_solved(puzzle, state)


def test_nonograms_solve() -> None:
    puzzle = {
        "type": "nonograms",
        "size": {"rows": 3, "cols": 3},
        "rowClues": [[3], [1], [2]],
        "colClues": [[3], [1, 1], [1]],
    }
    expected = [[1, 1, 1], [1, 0, 0], [1, 1, 0]]
    assert api.solve(puzzle) == expected
    assert api.count_solutions(puzzle) == 1
    assert api.is_solved(puzzle, expected)


def test_nonograms_overflowing_clue_is_malformed() -> None:
    puzzle = {
        "type": "nonograms",
        "size": {"rows": 2, "cols": 2},
        "rowClues": [[1, 1], [0]],
        "colClues": [[1], [1]],
    }
    with pytest.raises(MalformedPuzzleError):
        api.solve(puzzle)


def _kenken() -> Dict[str, Any]:
    cages = [
        {"cells": [[0, 0], [0, 1]], "op": "add", "target": 3},
        {"cells": [[0, 2], [1, 2]], "op": "mul", "target": 3},
        {"cells": [[1, 0], [2, 0]], "op": "sub", "target": 1},
        {"cells": [[1, 1], [2, 1]], "op": "add", "target": 4},
        {"cells": [[2, 2]], "op": "none", "target": 2},
    ]
    return {"type": "kenken", "size": {"rows": 3, "cols": 3}, "cages": cages}


def test_kenken_solve() -> None:
    puzzle = _kenken()
    expected = [[1, 2, 3], [2, 3, 1], [3, 1, 2]]
    assert api.solve(puzzle) == expected
    assert api.count_solutions(puzzle) == 1
    assert api.is_solved(puzzle, expected)


def test_kenken_bad_cage_is_malformed() -> None:
    puzzle = _kenken()
    puzzle["cages"][4]["cells"] = [[3, 3]]
    with pytest.raises(MalformedPuzzleError):
        api.solve(puzzle)
    puzzle = _kenken()
    puzzle["cages"][4]["cells"] = [[0, 0]]
    with pytest.raises(MalformedPuzzleError):
        api.solve(puzzle)


def test_skyscrapers_full_clues() -> None:
    solution = [[1, 2, 3], [2, 3, 1], [3, 1, 2]]
    puzzle: Dict[str, Any] = {"type": "skyscrapers", "size": {"rows": 3, "cols": 3}, "mode": "count"}
    puzzle.update(skyscrapers.clues_for(solution, "count"))
    assert puzzle["left"] == [3, 2, 1]
    assert api.solve(puzzle) == solution
    assert api.count_solutions(puzzle) == 1
    assert api.is_solved(puzzle, solution)


def test_skyscrapers_sum_mode() -> None:
    assert skyscrapers.visible([1, 3, 2], "sum") == 4
    assert skyscrapers.visible([1, 3, 2]) == 2
    solution = [[1, 2, 3], [2, 3, 1], [3, 1, 2]]
    puzzle: Dict[str, Any] = {"type": "skyscrapers", "size": {"rows": 3, "cols": 3}, "mode": "sum"}
    puzzle.update(skyscrapers.clues_for(solution, "sum"))
    assert api.is_solved(puzzle, solution)
    found = api.solve(puzzle)
    assert found is not None
    assert api.is_solved(puzzle, found)


@pytest.mark.parametrize("kind", api.puzzle_types())
def test_plugin_fallback_is_solved(kind: str) -> None:
    plugin = get_plugin(kind)
    rows, cols = plugin.clamp_size(5, 5)
    opts = {name: spec.default for name, spec in plugin.OPTIONS.items()}
    candidate = plugin.fallback(rows, cols, opts, random.Random(0))
    puzzle: Dict[str, Any] = {"type": kind, "size": {"rows": rows, "cols": cols}}
    puzzle.update(candidate.fields)
    assert plugin.is_solved(puzzle, candidate.solution)
    plugin.build_model(puzzle)
