from pathlib import Path
import sys
from typing import Any, Dict

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))
from gridcsp import worker  # noqa: E402

KENKEN: Dict[str, Any] = {
    "type": "kenken",
    "size": {"rows": 3, "cols": 3},
    "cages": [
        {"cells": [[0, 0], [0, 1]], "op": "add", "target": 3},
        {"cells": [[0, 2], [1, 2]], "op": "mul", "target": 3},
        {"cells": [[1, 0], [2, 0]], "op": "sub", "target": 1},
        {"cells": [[1, 1], [2, 1]], "op": "add", "target": 4},
        {"cells": [[2, 2]], "op": "none", "target": 2},
    ],
}

ANSWER = [[1, 2, 3], [2, 3, 1], [3, 1, 2]]


def test_handle_solve() -> None:
    res = worker.handle_request({"reqId": 1, "kind": "solve", "puzzle": KENKEN})
    assert res["reqId"] == 1
    assert res["ok"] is True
    assert res["data"]["status"] == "solved"
    assert res["data"]["solution"] == ANSWER
    assert res["data"]["stats"]["steps"] >= 0


def test_handle_count_and_is_solved() -> None:
    res = worker.handle_request({"reqId": "c", "kind": "count", "puzzle": KENKEN})
    assert res == {"reqId": "c", "kind": "count", "ok": True, "data": 1}
    res = worker.handle_request(
        {"reqId": "s", "kind": "isSolved", "puzzle": KENKEN, "state": ANSWER}
    )
    assert res["data"] is True


def test_handle_generate() -> None:
    res = worker.handle_request(
        {"reqId": 2, "kind": "generate", "puzzleType": "hitori", "size": "4x4", "seed": 0}
    )
    assert res["ok"] is True
    assert res["data"]["type"] == "hitori"
    assert res["data"]["size"] == {"rows": 4, "cols": 4}


def test_handle_errors_are_reported() -> None:
    res = worker.handle_request({"reqId": 3, "kind": "draw"})
    assert res["ok"] is False
    assert "draw" in res["err"]
    broken = dict(KENKEN, cages=[])
    res = worker.handle_request({"reqId": 4, "kind": "solve", "puzzle": broken})
    assert res["ok"] is False
    assert res["err"]


@pytest.mark.slow
def test_submit_uses_pool() -> None:
    try:
        res = worker.submit(
            {"reqId": 5, "kind": "solve", "puzzle": KENKEN}, timeout_s=30.0, jobs=1
        )
        assert res["ok"] is True
        assert res["data"]["solution"] == ANSWER
    finally:
        worker.close_pool()
