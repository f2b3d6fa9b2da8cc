import json
import hashlib
import logging
from pathlib import Path
import random
import sys
import time
from typing import Any, Dict, Optional, cast

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))
from gridcsp import api  # noqa: E402
from gridcsp import bulk_generator  # noqa: E402
from gridcsp import generator  # noqa: E402
from gridcsp import puzzle_io  # noqa: E402
from gridcsp import validators  # noqa: E402
from gridcsp.puzzle_builder import Candidate  # noqa: E402
from gridcsp.puzzle_types import MalformedPuzzleError  # noqa: E402
from gridcsp.puzzles import get_plugin, nurikabe  # noqa: E402

# 各種類の小さめの盤面サイズ
SMALL_SIZES = {
    "sudoku": 4,
    "kakuro": 5,
    "hashi": 5,
    "akari": 5,
    "hitori": 5,
    "nurikabe": 5,
    "slitherlink": 4,
    "nonograms": 5,
    "kenken": 4,
    "skyscrapers": 4,
}


def test_small_sizes_cover_all_types() -> None:
    assert set(SMALL_SIZES) == set(api.puzzle_types())


@pytest.mark.parametrize("kind", sorted(SMALL_SIZES))
def test_generate_puzzle_structure(kind: str) -> None:
    n = SMALL_SIZES[kind]
    puzzle = cast(Dict[str, Any], api.generate(kind, n, seed=0, timeout_s=20.0))
    # JSON に変換できるか確認
    json.dumps(puzzle)
    assert puzzle["schemaVersion"] == "3.0"
    assert puzzle["type"] == kind
    assert puzzle["size"] == {"rows": n, "cols": n}
    assert puzzle["uniqueness"] in ("unique", "uncertain")
    assert isinstance(puzzle["partial"], bool)
    assert puzzle["seedHash"] == hashlib.sha256(b"0").hexdigest()
    assert set(puzzle["solverStats"].keys()) >= {
        "steps",
        "maxDepth",
        "backtracks",
        "solutions",
        "status",
    }
    assert puzzle["difficultyEval"] in ("easy", "normal", "hard", "expert")
    params = puzzle["generationParams"]
    assert params["type"] == kind
    assert params["seed"] == 0
    assert params["timeoutS"] == 20.0
    validators.validate_puzzle(puzzle)
    assert api.is_solved(puzzle, puzzle["solution"])
    if puzzle["uniqueness"] == "unique":
        # 時間切れなら下限しか分からないので 1 を超えないことだけ確かめる
        assert api.count_solutions(puzzle, timeout_s=5.0) <= 1


def test_generate_sudoku_unique_and_solvable() -> None:
    puzzle = api.generate("sudoku", 4, {"difficulty": "easy"}, seed=1)
    assert puzzle["uniqueness"] == "unique"
    assert puzzle["difficulty"] == "easy"
    assert puzzle["id"].startswith("sd_4x4_easy_")
    assert api.count_solutions(puzzle) == 1
    solution = api.solve(puzzle)
    assert solution == puzzle["solution"]


def test_generate_deterministic_for_seed() -> None:
    first = api.generate("hitori", 5, seed=42)
    second = api.generate("hitori", 5, seed=42)
    assert first["grid"] == second["grid"]
    assert first["solution"] == second["solution"]


def test_return_stats() -> None:
    puzzle, stats = cast(
        tuple,
        generator.generate_puzzle("nonograms", 5, 5, seed=3, return_stats=True),
    )
    assert puzzle["type"] == "nonograms"
    assert stats["attempts"] >= 1
    assert set(stats.keys()) == {
        "attempts",
        "escalations",
        "solver_steps",
        "solver_max_depth",
        "elapsed_s",
    }


def test_size_clamping() -> None:
    assert get_plugin("sudoku").clamp_size(5, 5) == (4, 4)
    assert get_plugin("sudoku").clamp_size(8, 8) == (9, 9)
    assert get_plugin("hitori").clamp_size(2, 9) == (9, 9)
    assert get_plugin("kakuro").clamp_size(20, 3) == (15, 5)
    puzzle = api.generate("hitori", "2x3", seed=0)
    assert puzzle["size"] == {"rows": 4, "cols": 4}


def test_parse_size() -> None:
    assert api.parse_size(6) == (6, 6)
    assert api.parse_size("5x7") == (5, 7)
    assert api.parse_size(" 5 X 7 ") == (5, 7)
    assert api.parse_size({"rows": 3, "cols": 4}) == (3, 4)
    assert api.parse_size((8, 9)) == (8, 9)
    for bad in ("5by7", True, (1, 2, 3), {"rows": "3", "cols": 4}, None):
        with pytest.raises(ValueError):
            api.parse_size(bad)


def test_invalid_choice_raises() -> None:
    with pytest.raises(ValueError):
        api.generate("sudoku", 4, {"difficulty": "impossible"})


def test_unknown_type_raises() -> None:
    with pytest.raises(MalformedPuzzleError):
        api.generate("crossword", 5)


def test_unknown_option_only_warns(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING)
    puzzle = api.generate("hitori", 4, {"colour": "red"}, seed=0)
    assert "未知のオプション" in caplog.text
    validators.validate_puzzle(puzzle)


def test_numeric_option_is_clamped() -> None:
    puzzle = api.generate("hitori", 5, {"blackRatio": 0.9}, seed=2)
    assert puzzle["generationParams"]["options"]["blackRatio"] == 0.38


def test_overlapping_islands_fall_back(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    """埋め込み解の島にヒントが2つある候補は採用されない"""

    def overlapping(
        rows: int, cols: int, opts: Dict[str, Any], rng: random.Random
    ) -> Optional[Candidate]:
        clues = [[-1] * cols for _ in range(rows)]
        clues[0][0] = 1
        clues[0][1] = 1
        solution = [[0] * cols for _ in range(rows)]
        solution[0][0] = 1
        solution[0][1] = 1
        return Candidate({"clues": clues}, solution)

    monkeypatch.setattr(nurikabe, "build_candidate", overlapping)
    caplog.set_level(logging.WARNING)
    puzzle = api.generate("nurikabe", 5, seed=0, timeout_s=10.0)
    assert "埋め込み解が盤面の規則を満たさない" in caplog.text
    assert puzzle["partial"] is True
    assert puzzle["reason"] == "fallback"
    assert puzzle["solution"][0][:2] != [1, 1]
    validators.validate_puzzle(puzzle)


def test_timeout_without_fallback_raises() -> None:
    with pytest.raises(TimeoutError):
        generator.generate_puzzle(
            "sudoku", 4, 4, seed=0, timeout_s=0.0, allow_fallback=False
        )



def test_uniqueness_check_respects_deadline(monkeypatch: pytest.MonkeyPatch) -> None:
    plugin = get_plugin("sudoku")
    candidate = plugin.fallback(4, 4, {"difficulty": "easy"}, random.Random(0))
    budgets = []
    real_search = generator.search

    def recording(model: Any, **kwargs: Any) -> Any:
        budgets.append(kwargs["timeout_s"])
        return real_search(model, **kwargs)

    monkeypatch.setattr(generator, "search", recording)
    deadline = time.perf_counter() + 0.5
    generator._count_solutions(plugin, candidate, 4, 4, deadline)
    assert budgets and budgets[0] <= 0.5
    # 期限切れなら数えずに None
    budgets.clear()
    assert generator._count_solutions(plugin, candidate, 4, 4, time.perf_counter() - 1) is None
    assert budgets == []

def test_timeout_uses_fallback() -> None:
    puzzle = cast(
        Dict[str, Any], generator.generate_puzzle("kenken", 4, 4, seed=0, timeout_s=0.0)
    )
    assert puzzle["partial"] is True
    assert puzzle["reason"] == "fallback"
    validators.validate_puzzle(puzzle)


def test_save_puzzle(tmp_path: Path) -> None:
    puzzle = api.generate("sudoku", 4, {"difficulty": "easy"}, seed=1)
    path = puzzle_io.save_puzzle(puzzle, directory=tmp_path)
    assert path.exists()
    assert path.name == "map_sudoku.json"
    data = cast(Dict[str, Any], puzzle_io.load_puzzle(path))
    assert data["id"] == puzzle["id"]
    assert data["givens"] == puzzle["givens"]
    validators.validate_puzzle(data)


def test_save_puzzles_mixed(tmp_path: Path) -> None:
    puzzles = [
        api.generate("hitori", 4, seed=1),
        api.generate("nonograms", 4, seed=1),
    ]
    path = puzzle_io.save_puzzles(puzzles, directory=tmp_path)
    assert path.name == "map_mixed.json"
    data = puzzle_io.load_puzzle(path)
    assert isinstance(data, list)
    assert [p["type"] for p in data] == ["hitori", "nonograms"]


def test_load_puzzle_rejects_scalar(tmp_path: Path) -> None:
    file = tmp_path / "bad.json"
    file.write_text("42", encoding="utf-8")
    with pytest.raises(ValueError):
        puzzle_io.load_puzzle(file)


def test_parse_option() -> None:
    assert generator.parse_option("blackRatio=0.2") == ("blackRatio", 0.2)
    assert generator.parse_option("difficulty=hard") == ("difficulty", "hard")
    assert generator.parse_option("requireUnique=true") == ("requireUnique", True)
    with pytest.raises(ValueError):
        generator.parse_option("difficulty")


def test_generate_multiple_puzzles() -> None:
    puzzles = generator.generate_multiple_puzzles("sudoku", 4, 4, 1, seed=0)
    assert [p["difficulty"] for p in puzzles] == ["easy", "normal", "hard", "expert"]
    for pzl in puzzles:
        validators.validate_puzzle(pzl)
    # 難易度オプションのない種類は count_each 個だけ
    puzzles = generator.generate_multiple_puzzles("hitori", 4, 4, 2, seed=0)
    assert len(puzzles) == 2
    with pytest.raises(ValueError):
        generator.generate_multiple_puzzles("hitori", 4, 4, 0)


@pytest.mark.slow
def test_generate_multiple_puzzles_parallel() -> None:
    puzzles = generator.generate_multiple_puzzles(
        "kenken", 4, 4, 1, seed=0, jobs=2
    )
    assert [p["difficulty"] for p in puzzles] == ["easy", "normal", "hard"]


def test_bulk_generator_main(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    bulk_generator.main(
        ["nonograms", "4", "4", "2", "--seed", "5", "--output", str(tmp_path)]
    )
    path = tmp_path / "map_nonograms.json"
    assert path.exists()
    data = json.loads(path.read_text(encoding="utf-8"))
    assert len(data) == 2
    out = capsys.readouterr().out
    assert data[0]["id"] in out
