"""変数・制約・検証関数・探索の好みをひとまとめにしたモデル定義"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from .board import Board, iter_bits
from .constraints import Constraint
from .puzzle_types import MalformedPuzzleError

# 完全割り当ての盤面を受け取り、条件を満たせば True を返す関数
Validator = Callable[[Board], bool]

# MRV で同点になった変数の優先度。大きいほど先に分岐する
TieBreak = Callable[[Board, int], float]


@dataclass
class Model:
    """パズル1問分の CSP

    ``constraints`` は変数が変化するたびに再評価され、
    ``global_constraints`` は局所伝播が落ち着いた時点でまとめて評価される。
    ``validators`` は全変数が確定した葉でだけ呼ばれる。
    """

    domains: List[int]
    constraints: List[Constraint] = field(default_factory=list)
    global_constraints: List[Constraint] = field(default_factory=list)
    validators: List[Validator] = field(default_factory=list)
    value_order: Optional[Sequence[int]] = None
    tie_break: Optional[TieBreak] = None
    watchers: List[List[Constraint]] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        n = len(self.domains)
        self.watchers = [[] for _ in range(n)]
        for con in self.constraints:
            for var in set(con.scope):
                if not 0 <= var < n:
                    raise MalformedPuzzleError(
                        f"制約 {con!r} が存在しない変数 {var} を参照しています"
                    )
                self.watchers[var].append(con)
        for con in self.global_constraints:
            for var in con.scope:
                if not 0 <= var < n:
                    raise MalformedPuzzleError(
                        f"制約 {con!r} が存在しない変数 {var} を参照しています"
                    )

    @property
    def size(self) -> int:
        return len(self.domains)

    def new_board(self, seed: Optional[Dict[int, int]] = None) -> Board:
        """初期候補から新しい盤面を作る。``seed`` の値は先に確定させる"""
        board = Board(self.domains)
        if seed:
            for var, value in seed.items():
                board.restrict(var, 1 << value)
        return board

    def ordered_values(self, dom: int) -> List[int]:
        if self.value_order is None:
            return list(iter_bits(dom))
        head = [v for v in self.value_order if dom >> v & 1]
        rest = [v for v in iter_bits(dom) if v not in head]
        return head + rest


__all__ = ["Model", "Validator", "TieBreak"]
