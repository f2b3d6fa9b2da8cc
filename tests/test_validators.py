from pathlib import Path
import sys
from typing import Any, Dict, cast

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))
from gridcsp import validators  # noqa: E402
from gridcsp.loop_wilson import create_empty_edges, rectangle_edges  # noqa: E402
from gridcsp.puzzle_types import MalformedPuzzleError  # noqa: E402


def test_is_connected() -> None:
    mask = np.array([[1, 1, 0], [0, 1, 0], [0, 1, 1]], dtype=np.uint8)
    assert validators.is_connected(mask)
    mask[1, 1] = 0
    assert not validators.is_connected(mask)
    # 開きマスがなければ連結とみなす
    assert validators.is_connected(np.zeros((2, 2), dtype=np.uint8))


def test_has_2x2() -> None:
    grid = [[0, 0, 1], [0, 0, 1], [1, 1, 1]]
    assert validators.has_2x2(grid, 0)
    assert validators.has_2x2(grid, 1) is False
    assert not validators.has_2x2([[0, 0]], 0)


def test_components() -> None:
    comps = validators.components([[1, 0, 1], [1, 0, 0]])
    assert sorted(len(c) for c in comps) == [1, 2]


def test_edges_cross() -> None:
    assert validators.edges_cross((1, 0), (1, 2), (0, 1), (2, 1))
    # 端点を共有するだけなら交差ではない
    assert not validators.edges_cross((1, 0), (1, 2), (1, 2), (3, 2))
    # 平行な線分
    assert not validators.edges_cross((0, 0), (0, 2), (1, 0), (1, 2))


def test_is_single_loop() -> None:
    edges = rectangle_edges(2, 2)
    assert validators.is_single_loop(edges["horizontal"], edges["vertical"])
    empty = create_empty_edges(2, 2)
    assert not validators.is_single_loop(empty["horizontal"], empty["vertical"])


def test_is_single_loop_two_loops() -> None:
    edges = create_empty_edges(1, 3)
    # 左右のマスをそれぞれ囲む 2 つのループ
    for c in (0, 2):
        edges["horizontal"][0][c] = True
        edges["horizontal"][1][c] = True
        edges["vertical"][0][c] = True
        edges["vertical"][0][c + 1] = True
    assert not validators.is_single_loop(edges["horizontal"], edges["vertical"])


def _sudoku_puzzle() -> Dict[str, Any]:
    solution = [[1, 2, 3, 4], [3, 4, 1, 2], [2, 1, 4, 3], [4, 3, 2, 1]]
    givens = [row[:] for row in solution]
    givens[0][0] = 0
    return {
        "type": "sudoku",
        "size": {"rows": 4, "cols": 4},
        "givens": givens,
        "solution": solution,
        "uniqueness": "unique",
    }


def test_validate_puzzle() -> None:
    validators.validate_puzzle(_sudoku_puzzle())


def test_validate_puzzle_fail() -> None:
    puzzle = _sudoku_puzzle()
    puzzle["solution"][0][0] = 2
    with pytest.raises(ValueError):
        validators.validate_puzzle(puzzle)

    puzzle = _sudoku_puzzle()
    puzzle["uniqueness"] = "maybe"
    with pytest.raises(ValueError):
        validators.validate_puzzle(puzzle)

    puzzle = _sudoku_puzzle()
    del puzzle["solution"]
    with pytest.raises(ValueError):
        validators.validate_puzzle(puzzle)


def test_validate_puzzle_unknown_type() -> None:
    puzzle = cast(Dict[str, Any], {"type": "crossword", "size": {"rows": 3, "cols": 3}})
    with pytest.raises(MalformedPuzzleError):
        validators.validate_puzzle(puzzle)
