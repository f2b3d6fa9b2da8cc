from pathlib import Path
import random
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))
from gridcsp import loop_wilson  # noqa: E402
from gridcsp.validators import is_single_loop  # noqa: E402


def test_rectangle_edges() -> None:
    edges = loop_wilson.rectangle_edges(2, 3)
    assert loop_wilson.count_edges(edges) == 2 * (2 + 3)
    assert is_single_loop(edges["horizontal"], edges["vertical"])
    # 外周だけなら四隅でしか曲がらない
    assert loop_wilson.curve_ratio(edges) == pytest.approx(4 / 10)


@pytest.mark.parametrize("seed", [0, 1, 2])
def test_generate_loop_is_single_loop(seed: int) -> None:
    edges, length, curve = loop_wilson.generate_loop(5, 5, random.Random(seed))
    assert is_single_loop(edges["horizontal"], edges["vertical"])
    assert length == loop_wilson.count_edges(edges)
    assert length >= loop_wilson.min_loop_length(5, 5)
    assert 0.0 <= curve <= 1.0


def test_generate_loop_deterministic() -> None:
    first = loop_wilson.generate_loop(6, 4, random.Random(7))
    second = loop_wilson.generate_loop(6, 4, random.Random(7))
    assert first[0] == second[0]
