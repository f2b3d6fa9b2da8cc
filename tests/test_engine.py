from pathlib import Path
import random
import sys

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))
from gridcsp.board import Board, iter_bits, mask_of, range_mask  # noqa: E402
from gridcsp.constraints import (  # noqa: E402
    AllDifferent,
    Cage,
    Cardinality,
    Connectivity,
    LinePattern,
    LineVisibility,
    LoopVertex,
    SumDistinct,
    WeightedSum,
    digit_combos,
)
from gridcsp.model import Model  # noqa: E402
from gridcsp.propagation import propagate  # noqa: E402
from gridcsp.search import SearchStatus, search  # noqa: E402


def _latin_model(n: int) -> Model:
    full = mask_of(range(1, n + 1))
    constraints = []
    for r in range(n):
        constraints.append(AllDifferent([r * n + c for c in range(n)], full))
    for c in range(n):
        constraints.append(AllDifferent([r * n + c for r in range(n)], full))
    return Model([full] * (n * n), constraints)


def test_mask_helpers() -> None:
    assert mask_of([1, 3]) == 0b1010
    assert list(iter_bits(0b1010)) == [1, 3]
    assert range_mask(2, 4) == 0b11100
    assert range_mask(3, 2) == 0


def test_board_undo_restores_domains() -> None:
    board = Board([0b111, 0b110])
    token = board.mark()
    assert board.assign(0, 1) == [0]
    assert board.value_of(0) == 1
    assert board.restrict(1, 0b100)
    assert board.is_complete()
    board.undo(token)
    assert board.domains == [0b111, 0b110]
    assert board.trail == []
    # 同じ値で絞っても変化はない
    assert board.assign(1, 1) == [1]
    assert board.assign(1, 1) == []



def test_board_queries_remove_and_unassign() -> None:
    board = Board([0b1110, 0b0110])
    assert board.domain_of(0) == 0b1110
    assert board.size_of(0) == 3
    assert not board.is_assigned(0)
    token = board.mark()
    assert board.remove(0, 2)
    assert not board.remove(0, 2)
    assert board.domain_of(0) == 0b1010
    board.assign(0, 3)
    assert board.is_assigned(0)
    assert board.size_of(0) == 1
    board.unassign(token)
    assert board.domain_of(0) == 0b1110
    assert board.trail == []
    # 空の候補は確定扱いにしない
    board.restrict(1, 0)
    assert not board.is_assigned(1)

def test_board_values_marks_unassigned() -> None:
    board = Board([0b10, 0b11, 0])
    assert board.values() == [1, -1, -1]
    assert board.has_empty_domain()


def test_cardinality_upper_bound_forces_rest() -> None:
    board = Board([0b10, 0b11, 0b11])
    con = Cardinality([0, 1, 2], 0b10, 1, 1)
    reductions = con.deduce(board)
    assert reductions is not None
    for var, mask in reductions:
        board.restrict(var, mask)
    assert board.values() == [1, 0, 0]


def test_cardinality_lower_bound_and_violation() -> None:
    board = Board([0b01, 0b11])
    con = Cardinality([0, 1], 0b10, 1)
    assert con.deduce(board) == [(1, 0b10)]
    board.restrict(1, 0b01)
    assert con.deduce(board) is None
    assert not con.is_viable(board)


def test_alldifferent_hidden_single() -> None:
    board = Board([0b0110, 0b0110, 0b1110])
    con = AllDifferent([0, 1, 2], 0b1110)
    reductions = con.deduce(board)
    assert reductions is not None
    assert (2, 0b1000) in reductions


def test_alldifferent_duplicate_is_contradiction() -> None:
    board = Board([0b10, 0b10])
    assert AllDifferent([0, 1]).deduce(board) is None


def test_digit_combos() -> None:
    # 2 マスで 3 は {1, 2} だけ
    assert digit_combos(2, 3) == (0b110,)
    assert digit_combos(2, 18) == ()


def test_sum_distinct_narrows_digits() -> None:
    board = Board([mask_of(range(1, 10))] * 2)
    con = SumDistinct([0, 1], 4)
    reductions = con.deduce(board)
    assert reductions is not None
    for var, mask in reductions:
        board.restrict(var, mask)
    assert board.domains == [0b1010, 0b1010]


def test_weighted_sum_bounds() -> None:
    board = Board([0b111, 0b001])
    con = WeightedSum([0, 1], 2)
    assert con.deduce(board) == [(0, 0b100)]
    assert not WeightedSum([0, 1], 5).is_viable(board)


def test_loop_vertex_degree() -> None:
    board = Board([0b10, 0b11, 0b01])
    reductions = LoopVertex([0, 1, 2]).deduce(board)
    assert reductions == [(1, 0b10)]
    board = Board([0b10, 0b10, 0b10])
    assert LoopVertex([0, 1, 2]).deduce(board) is None


def test_cage_supports() -> None:
    board = Board([0b1110, 0b1110])
    # 同じ行の 2 マスで積 3 は {1, 3}
    cage = Cage([0, 1], "mul", 3, [(0, 0), (0, 1)])
    reductions = cage.deduce(board)
    assert reductions is not None
    for var, mask in reductions:
        board.restrict(var, mask)
    assert board.domains == [0b1010, 0b1010]


def test_line_visibility_count() -> None:
    board = Board([0b1110] * 3)
    # 左から 3 つ見えるなら 1, 2, 3 の順しかない
    con = LineVisibility([0, 1, 2], 3, 0)
    for var, mask in con.deduce(board) or []:
        board.restrict(var, mask)
    assert board.values() == [1, 2, 3]


def test_line_pattern_overlap() -> None:
    board = Board([0b11] * 5)
    # 長さ 5 の列に 4 の連続なら中央 3 マスが黒
    con = LinePattern(list(range(5)), [4])
    for var, mask in con.deduce(board) or []:
        board.restrict(var, mask)
    assert board.values() == [-1, 1, 1, 1, -1]


def test_connectivity_forces_articulation_open() -> None:
    board = Board([0b01, 0b11, 0b01])
    con = Connectivity([[0, 1, 2]], open_value=0)
    reductions = con.deduce(board)
    assert reductions is not None
    assert (1, 0b01) in reductions
    board.restrict(1, 0b10)
    assert con.deduce(board) is None


def test_propagate_records_rule_counter() -> None:
    model = Model([0b10, 0b10], [AllDifferent([0, 1])])
    stats: dict = {}
    board = model.new_board()
    assert not propagate(board, model, range(2), stats)
    assert stats["rule_alldiff"] == 1


def test_search_count_latin_squares() -> None:
    result = search(_latin_model(3), mode="count", limit=100)
    assert result.status == SearchStatus.EXHAUSTED
    assert result.complete
    assert result.count == 12


def test_search_count_stops_at_limit() -> None:
    result = search(_latin_model(3), mode="count", limit=2)
    assert result.status == SearchStatus.SOLVED
    assert result.count == 2
    assert result.stats["solutions"] == 2


def test_search_first_mode() -> None:
    result = search(_latin_model(4))
    assert result.status == SearchStatus.SOLVED
    values = result.solution
    assert values is not None
    rows = [values[r * 4 : (r + 1) * 4] for r in range(4)]
    for row in rows:
        assert sorted(row) == [1, 2, 3, 4]
    assert result.stats["steps"] >= 1


def test_search_empty_domain_at_root() -> None:
    model = Model([0, 0b11])
    result = search(model)
    assert result.status == SearchStatus.EXHAUSTED
    assert result.stats["steps"] == 0
    assert result.solution is None


def test_search_no_empty_cells_is_solved() -> None:
    model = Model([0b10, 0b100], [AllDifferent([0, 1])])
    result = search(model)
    assert result.status == SearchStatus.SOLVED
    assert result.solution == [1, 2]


def test_search_step_limit_times_out() -> None:
    result = search(_latin_model(5), mode="count", limit=1000, step_limit=1)
    assert result.status == SearchStatus.TIMED_OUT
    assert not result.complete


def test_search_leaf_validator() -> None:
    model = Model([0b11, 0b11], validators=[lambda board: board.values() != [0, 0]])
    result = search(model, mode="count", limit=10)
    assert result.count == 3
    assert [0, 0] not in result.solutions


def test_search_seed_and_rng() -> None:
    model = _latin_model(4)
    first = search(model, rng=random.Random(5)).solution
    second = search(model, rng=random.Random(5)).solution
    assert first == second
    seeded = search(model, seed={0: 4, 1: 3})
    assert seeded.solution is not None
    assert seeded.solution[:2] == [4, 3]


def test_status_values() -> None:
    assert SearchStatus.SEARCHING.value == "searching"
    assert SearchStatus.TIMED_OUT.value == "timed-out"
