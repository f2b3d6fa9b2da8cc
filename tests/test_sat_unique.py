from pathlib import Path
import sys
from typing import List, Optional

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))
from gridcsp import sat_unique  # noqa: E402
from gridcsp.loop_wilson import rectangle_edges  # noqa: E402
from gridcsp.puzzles.slitherlink import cell_counts  # noqa: E402


def test_full_clues_of_rectangle_are_unique() -> None:
    clues: List[List[Optional[int]]] = [
        list(row) for row in cell_counts(rectangle_edges(3, 3), 3, 3)
    ]
    assert sat_unique.count_solutions(clues, 3, 3) == 1
    assert sat_unique.is_unique(clues, 3, 3)


def test_empty_clues_have_many_loops() -> None:
    clues: List[List[Optional[int]]] = [[None] * 3 for _ in range(3)]
    assert sat_unique.count_solutions(clues, 3, 3, limit=2) == 2
    assert not sat_unique.is_unique(clues, 3, 3)


def test_contradictory_clues_have_no_solution() -> None:
    # 1x1 盤面で 4 本の線は唯一のループになるが 3 本はありえない
    assert sat_unique.count_solutions([[4]], 1, 1) == 1
    assert sat_unique.count_solutions([[3]], 1, 1) == 0


def test_small_loop_is_cut() -> None:
    # 左右の 4 がそれぞれ小ループを強制するので 1 本のループにはならない
    clues: List[List[Optional[int]]] = [[4, None, 4]]
    assert sat_unique.count_solutions(clues, 1, 3) == 0
