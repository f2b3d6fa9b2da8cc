"""バックトラック探索を行う汎用ソルバーモジュール

分岐の前に必ず制約伝播を不動点まで回し、候補が最も少ない変数 (MRV) を
選んで値を試す。最初の解で止めるモードと、解を ``limit`` 個まで数える
モードは同じ展開処理を共有し、葉での扱いだけが異なる。
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional

from .board import Board
from .model import Model
from .propagation import propagate

logger = logging.getLogger(__name__)


class SearchStatus(str, Enum):
    """探索の状態"""

    SEARCHING = "searching"
    SOLVED = "solved"
    EXHAUSTED = "exhausted"
    TIMED_OUT = "timed-out"


@dataclass
class SearchResult:
    """探索結果と統計情報"""

    status: SearchStatus
    solutions: List[List[int]] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.solutions)

    @property
    def solution(self) -> Optional[List[int]]:
        return self.solutions[0] if self.solutions else None

    @property
    def complete(self) -> bool:
        """探索木を調べ尽くして解の個数が確定しているか"""
        return self.status == SearchStatus.EXHAUSTED


@dataclass
class _Frame:
    var: int
    token: int
    values: Iterator[int]


class Search:
    """1 回分の探索状態を保持するクラス

    盤面はインスタンスごとに新しく作るため、複数の探索が同じ盤面を
    書き換えることはない。
    """

    def __init__(
        self,
        model: Model,
        *,
        mode: str = "first",
        limit: int = 1,
        timeout_s: float | None = None,
        step_limit: int | None = None,
        rng: random.Random | None = None,
        seed: Optional[Dict[int, int]] = None,
    ) -> None:
        if mode not in ("first", "count"):
            raise ValueError("mode は first または count で指定")
        self.model = model
        self.mode = mode
        self.limit = 1 if mode == "first" else max(1, limit)
        self.timeout_s = timeout_s
        self.step_limit = step_limit
        self.rng = rng
        self.board: Board = model.new_board(seed)
        self.status = SearchStatus.SEARCHING
        self.solutions: List[List[int]] = []
        self.stats: Dict[str, int] = {"steps": 0, "max_depth": 0, "backtracks": 0}
        self._deadline: float | None = None

    # ------------------------------------------------------------------
    def _select_variable(self) -> Optional[int]:
        """候補数が最小の未確定変数を返す。すべて確定なら ``None``"""

        best_size = 1 << 30
        ties: List[int] = []
        for var, dom in enumerate(self.board.domains):
            if dom & (dom - 1) == 0:
                continue
            size = dom.bit_count()
            if size < best_size:
                best_size = size
                ties = [var]
            elif size == best_size:
                ties.append(var)
        if not ties:
            return None
        tie_break = self.model.tie_break
        if len(ties) == 1 or tie_break is None:
            return ties[0]
        board = self.board
        return max(ties, key=lambda v: (tie_break(board, v), -v))

    def _order_values(self, var: int) -> List[int]:
        values = self.model.ordered_values(self.board.domain_of(var))
        if self.rng is not None:
            self.rng.shuffle(values)
        return values

    def _accept_leaf(self) -> bool:
        board = self.board
        for con in self.model.constraints:
            if not con.is_viable(board):
                return False
        for con in self.model.global_constraints:
            if not con.is_viable(board):
                return False
        for check in self.model.validators:
            if not check(board):
                return False
        return True

    def _out_of_budget(self) -> bool:
        if self._deadline is not None and time.perf_counter() > self._deadline:
            return True
        return self.step_limit is not None and self.stats["steps"] >= self.step_limit

    def _finish(self, status: SearchStatus) -> SearchResult:
        self.status = status
        self.stats["solutions"] = len(self.solutions)
        logger.debug(
            "探索終了: status=%s steps=%d solutions=%d",
            status.value,
            self.stats["steps"],
            len(self.solutions),
        )
        return SearchResult(status, self.solutions, self.stats)

    # ------------------------------------------------------------------
    def run(self) -> SearchResult:
        """探索を実行して結果を返す"""

        if self.timeout_s is not None:
            self._deadline = time.perf_counter() + self.timeout_s
        board = self.board
        stats = self.stats

        # 根で空の候補があればその時点で矛盾
        if board.has_empty_domain():
            return self._finish(SearchStatus.EXHAUSTED)
        if not propagate(board, self.model, range(len(board)), stats):
            return self._finish(SearchStatus.EXHAUSTED)

        frames: List[_Frame] = []
        descend = True
        while True:
            if descend:
                descend = False
                if self._out_of_budget():
                    return self._finish(SearchStatus.TIMED_OUT)
                stats["steps"] += 1
                var = self._select_variable()
                if var is None:
                    if self._accept_leaf():
                        self.solutions.append(board.values())
                        if len(self.solutions) >= self.limit:
                            return self._finish(SearchStatus.SOLVED)
                else:
                    frames.append(_Frame(var, board.mark(), iter(self._order_values(var))))
                    if len(frames) > stats["max_depth"]:
                        stats["max_depth"] = len(frames)

            if not frames:
                if self.mode == "first" and self.solutions:
                    return self._finish(SearchStatus.SOLVED)
                return self._finish(SearchStatus.EXHAUSTED)

            frame = frames[-1]
            for value in frame.values:
                board.undo(frame.token)
                changed = board.assign(frame.var, value)
                if propagate(board, self.model, changed, stats):
                    descend = True
                    break
                stats["backtracks"] += 1
            if not descend:
                board.unassign(frame.token)
                frames.pop()


def search(
    model: Model,
    *,
    mode: str = "first",
    limit: int = 1,
    timeout_s: float | None = None,
    step_limit: int | None = None,
    rng: random.Random | None = None,
    seed: Optional[Dict[int, int]] = None,
) -> SearchResult:
    """``Search`` を作って実行するだけの簡易関数

    :param mode: ``"first"`` なら最初の解で停止、``"count"`` なら
        ``limit`` 個見つかるまで数える
    :param timeout_s: 壁時計での制限秒。``None`` なら無制限
    :param step_limit: 探索ノード数の上限。超えたら時間切れと同じ扱い
    :param rng: 値の試行順をシャッフルする乱数生成器。生成処理で使う
    :param seed: 先に確定させておく ``{変数番号: 値}``
    """

    return Search(
        model,
        mode=mode,
        limit=limit,
        timeout_s=timeout_s,
        step_limit=step_limit,
        rng=rng,
        seed=seed,
    ).run()


__all__ = ["SearchStatus", "SearchResult", "Search", "search"]
