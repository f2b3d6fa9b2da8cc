"""PySAT を使ったスリザーリンクの一意解チェックモジュール

頂点の次数とヒントの数字を CNF に落とし、複数の小ループに分かれた
解が見つかるたびにその小ループを禁止する節を足して解き直す。
"""

from __future__ import annotations

import itertools
import logging
from typing import List, Optional, Sequence, Set, Tuple

from pysat.card import CardEnc, EncType
from pysat.formula import CNF, IDPool
from pysat.solvers import Minisat22

logger = logging.getLogger(__name__)

Clues = Sequence[Sequence[Optional[int]]]

# 小ループ禁止節を足して解き直す回数の上限
MAX_LOOP_CUTS = 2000


def _create_variables(rows: int, cols: int, pool: IDPool) -> Tuple[List[List[int]], List[List[int]]]:
    """辺ごとの SAT 変数を作成する補助関数"""
    horizontal = [[pool.id(f"h_{r}_{c}") for c in range(cols)] for r in range(rows + 1)]
    vertical = [[pool.id(f"v_{r}_{c}") for c in range(cols + 1)] for r in range(rows)]
    return horizontal, vertical


def _even_parity_clauses(lits: List[int]) -> List[List[int]]:
    """偶数個の真を強制する制約を生成"""
    clauses: List[List[int]] = []
    for bits in itertools.product([0, 1], repeat=len(lits)):
        # 奇数個のときはその割り当てを禁止する
        if sum(bits) % 2 == 1:
            clauses.append([-lit if bit else lit for lit, bit in zip(lits, bits)])
    return clauses


def _build_cnf(clues: Clues, rows: int, cols: int) -> Tuple[CNF, List[List[int]], List[List[int]]]:
    pool = IDPool()
    horizontal, vertical = _create_variables(rows, cols, pool)
    cnf = CNF()

    # 頂点の次数は 0 または 2 に制限する
    for r in range(rows + 1):
        for c in range(cols + 1):
            lits: List[int] = []
            if c < cols:
                lits.append(horizontal[r][c])
            if c > 0:
                lits.append(horizontal[r][c - 1])
            if r < rows:
                lits.append(vertical[r][c])
            if r > 0:
                lits.append(vertical[r - 1][c])
            if len(lits) >= 2:
                cnf.extend(
                    CardEnc.atmost(lits, 2, vpool=pool, encoding=EncType.seqcounter).clauses
                )
                cnf.extend(_even_parity_clauses(lits))
            elif len(lits) == 1:
                cnf.append([-lits[0]])

    # ヒント数字の制約を追加
    for r in range(rows):
        for c in range(cols):
            clue = clues[r][c]
            if clue is None:
                continue
            lits = [horizontal[r][c], horizontal[r + 1][c], vertical[r][c], vertical[r][c + 1]]
            cnf.extend(
                CardEnc.equals(lits, clue, vpool=pool, encoding=EncType.seqcounter).clauses
            )

    # 線が1本もない盤面は解ではない
    cnf.append([v for row in horizontal for v in row] + [v for row in vertical for v in row])
    return cnf, horizontal, vertical


def _loops(
    model: Set[int], horizontal: List[List[int]], vertical: List[List[int]]
) -> List[List[int]]:
    """真になった辺を閉路ごとに分けて返す"""

    rows, cols = len(vertical), len(horizontal[0]) if horizontal else 0
    width = cols + 1
    adj: dict = {}
    for r in range(rows + 1):
        for c in range(cols):
            var = horizontal[r][c]
            if var in model:
                a, b = r * width + c, r * width + c + 1
                adj.setdefault(a, []).append((b, var))
                adj.setdefault(b, []).append((a, var))
    for r in range(rows):
        for c in range(cols + 1):
            var = vertical[r][c]
            if var in model:
                a, b = r * width + c, (r + 1) * width + c
                adj.setdefault(a, []).append((b, var))
                adj.setdefault(b, []).append((a, var))
    seen: Set[int] = set()
    loops: List[List[int]] = []
    for start in adj:
        if start in seen:
            continue
        seen.add(start)
        stack = [start]
        edges: Set[int] = set()
        while stack:
            u = stack.pop()
            for w, var in adj[u]:
                edges.add(var)
                if w not in seen:
                    seen.add(w)
                    stack.append(w)
        loops.append(sorted(edges))
    return loops


def _next_single_loop(
    solver: Minisat22, horizontal: List[List[int]], vertical: List[List[int]]
) -> Optional[List[int]]:
    """1本のループになっている解を探す。見つからなければ None"""

    for _ in range(MAX_LOOP_CUTS):
        if not solver.solve():
            return None
        model = {lit for lit in solver.get_model() if lit > 0}
        loops = _loops(model, horizontal, vertical)
        if len(loops) == 1:
            return loops[0]
        for loop in loops:
            solver.add_clause([-var for var in loop])
    raise TimeoutError("小ループの除去が上限回数に達しました")


def count_solutions(clues: Clues, rows: int, cols: int, limit: int = 2) -> int:
    """ヒントを満たす単一ループ解を ``limit`` 個まで数える"""

    cnf, horizontal, vertical = _build_cnf(clues, rows, cols)
    edge_vars = [v for row in horizontal for v in row] + [v for row in vertical for v in row]
    found = 0
    with Minisat22(bootstrap_with=cnf.clauses) as solver:
        while found < limit:
            loop = _next_single_loop(solver, horizontal, vertical)
            if loop is None:
                break
            found += 1
            # 辺変数だけでこの解を禁止する
            on = set(loop)
            solver.add_clause([-v if v in on else v for v in edge_vars])
    logger.debug("SAT による解の数: %d", found)
    return found


def is_unique(clues: Clues, rows: int, cols: int) -> bool:
    """与えられたヒントから解が一意か確認する"""
    return count_solutions(clues, rows, cols, limit=2) == 1


__all__ = ["count_solutions", "is_unique", "MAX_LOOP_CUTS"]
