"""制約の共通インターフェースと汎用制約クラスをまとめたモジュール

各制約は担当する変数の並び (scope) を持ち、次の2つの操作を提供する。

- ``is_viable(board)``: 現在の候補で制約をまだ満たせるかを返す軽い判定
- ``deduce(board)``: 論理的に強制される候補の絞り込みを
  ``[(変数番号, 許可マスク), ...]`` で返す。矛盾なら ``None``

制約は推測をしない。値を仮置きするのは探索側の役割。
"""

from __future__ import annotations

import itertools
from functools import lru_cache
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .board import Board, iter_bits, max_value, min_value, range_mask
from .validators import _flood_fill, _forced_open

Reductions = List[Tuple[int, int]]

# TableConstraint のキャッシュ上限。超えたら作り直す
_CACHE_LIMIT = 20000


class Constraint:
    """制約の基底クラス"""

    name = "constraint"
    # True の制約は局所伝播が落ち着いてからまとめて実行する
    is_global = False

    def __init__(self, scope: Sequence[int]) -> None:
        self.scope: Tuple[int, ...] = tuple(scope)

    def deduce(self, board: Board) -> Optional[Reductions]:
        raise NotImplementedError

    def is_viable(self, board: Board) -> bool:
        return self.deduce(board) is not None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({len(self.scope)} vars)"


class Cardinality(Constraint):
    """``values`` に含まれる値を取る変数の数が ``lo`` 以上 ``hi`` 以下

    明かりの区間 (高々1個)、数字ブロックの個数指定、黒マスの隣接禁止、
    2x2 の海禁止など、数えるだけで書ける制約をすべてこのクラスで表す。
    """

    name = "count"

    def __init__(
        self,
        scope: Sequence[int],
        values: int,
        lo: int,
        hi: Optional[int] = None,
        *,
        name: Optional[str] = None,
    ) -> None:
        super().__init__(scope)
        self.values = values
        self.lo = lo
        self.hi = len(self.scope) if hi is None else hi
        if name is not None:
            self.name = name

    def _tally(self, board: Board) -> Tuple[int, int, List[int]]:
        inside = self.values
        must = 0
        may = 0
        undecided: List[int] = []
        domains = board.domains
        for var in self.scope:
            dom = domains[var]
            if dom & inside == 0:
                continue
            may += 1
            if dom & ~inside == 0:
                must += 1
            else:
                undecided.append(var)
        return must, may, undecided

    def is_viable(self, board: Board) -> bool:
        must, may, _ = self._tally(board)
        return must <= self.hi and may >= self.lo

    def deduce(self, board: Board) -> Optional[Reductions]:
        must, may, undecided = self._tally(board)
        if must > self.hi or may < self.lo:
            return None
        if not undecided:
            return []
        if must == self.hi:
            # 上限に達したので残りは対象外の値に決まる
            return [(var, ~self.values) for var in undecided]
        if may == self.lo:
            return [(var, self.values) for var in undecided]
        return []


class AllDifferent(Constraint):
    """scope 内の値がすべて異なる

    ``universe`` の値の個数と変数の数が等しい場合 (数独の行など) は
    各値がどこかに必ず現れるので、置き場所が1つしかない値も確定させる。
    """

    name = "alldiff"

    def __init__(self, scope: Sequence[int], universe: int = 0) -> None:
        super().__init__(scope)
        self.universe = universe
        self.permutation = universe != 0 and universe.bit_count() == len(self.scope)

    def deduce(self, board: Board) -> Optional[Reductions]:
        domains = board.domains
        doms = [domains[var] for var in self.scope]
        fixed = 0
        union = 0
        for dom in doms:
            union |= dom
            if dom and dom & (dom - 1) == 0:
                if fixed & dom:
                    return None
                fixed |= dom
        if union.bit_count() < len(doms):
            return None
        out: Reductions = []
        for var, dom in zip(self.scope, doms):
            if dom & (dom - 1) and dom & fixed:
                out.append((var, ~fixed))
        if self.permutation:
            for value in iter_bits(self.universe):
                bit = 1 << value
                holder = -1
                holders = 0
                for var, dom in zip(self.scope, doms):
                    if dom & bit:
                        holders += 1
                        holder = var
                        if holders > 1:
                            break
                if holders == 0:
                    return None
                if holders == 1 and domains[holder] != bit:
                    out.append((holder, bit))
        return out


@lru_cache(maxsize=None)
def digit_combos(length: int, total: int, digits: int = 9) -> Tuple[int, ...]:
    """1..digits の異なる数字 ``length`` 個で ``total`` を作る組をマスクで返す"""
    combos = []
    for combo in itertools.combinations(range(1, digits + 1), length):
        if sum(combo) == total:
            mask = 0
            for d in combo:
                mask |= 1 << d
            combos.append(mask)
    return tuple(combos)


class SumDistinct(Constraint):
    """異なる数字で合計が ``target`` になる連続区間 (カックロの列)"""

    name = "runsum"

    def __init__(self, scope: Sequence[int], target: int, digits: int = 9) -> None:
        super().__init__(scope)
        self.target = target
        self.combos = digit_combos(len(self.scope), target, digits)

    def deduce(self, board: Board) -> Optional[Reductions]:
        domains = board.domains
        fixed = 0
        open_vars: List[int] = []
        open_doms: List[int] = []
        for var in self.scope:
            dom = domains[var]
            if dom == 0:
                return None
            if dom & (dom - 1) == 0:
                if fixed & dom:
                    return None
                fixed |= dom
            else:
                open_vars.append(var)
                open_doms.append(dom)
        if not open_vars:
            return [] if fixed in self.combos else None
        allowed = 0
        for combo in self.combos:
            if combo & fixed != fixed:
                continue
            rest = combo & ~fixed
            if all(dom & rest for dom in open_doms):
                allowed |= rest
        if allowed == 0:
            return None
        return [(var, allowed) for var, dom in zip(open_vars, open_doms) if dom & ~allowed]


class WeightedSum(Constraint):
    """値の合計がちょうど ``target`` になる (橋の本数と島の数字)"""

    name = "degree"

    def __init__(self, scope: Sequence[int], target: int) -> None:
        super().__init__(scope)
        self.target = target

    def _bounds(self, board: Board) -> Tuple[int, int]:
        lo = 0
        hi = 0
        for var in self.scope:
            dom = board.domains[var]
            lo += min_value(dom)
            hi += max_value(dom)
        return lo, hi

    def is_viable(self, board: Board) -> bool:
        lo, hi = self._bounds(board)
        return lo <= self.target <= hi

    def deduce(self, board: Board) -> Optional[Reductions]:
        if any(board.domains[var] == 0 for var in self.scope):
            return None
        lo, hi = self._bounds(board)
        target = self.target
        if target < lo or target > hi:
            return None
        out: Reductions = []
        for var in self.scope:
            dom = board.domains[var]
            if dom & (dom - 1) == 0:
                continue
            others_lo = lo - min_value(dom)
            others_hi = hi - max_value(dom)
            allowed = range_mask(target - others_hi, target - others_lo)
            if dom & ~allowed:
                out.append((var, allowed))
        return out


class LoopVertex(Constraint):
    """頂点に接続する線の本数が 0 本または 2 本 (スリザーリンク)"""

    name = "vertex"

    def deduce(self, board: Board) -> Optional[Reductions]:
        on = 0
        undecided: List[int] = []
        for var in self.scope:
            dom = board.domains[var]
            if dom == 2:
                on += 1
            elif dom == 3:
                undecided.append(var)
            elif dom == 0:
                return None
        if on > 2:
            return None
        if on == 2:
            return [(var, 1) for var in undecided]
        if on == 1:
            if not undecided:
                # 行き止まりになる
                return None
            if len(undecided) == 1:
                return [(undecided[0], 2)]
            return []
        if len(undecided) == 1:
            return [(undecided[0], 1)]
        return []


class TableConstraint(Constraint):
    """候補の組み合わせを列挙して各変数の支持値を求める制約の基底

    同じ候補の並びに対する結果は変わらないので、インスタンスごとに
    ``_supports`` の結果を辞書でキャッシュする。
    """

    def __init__(self, scope: Sequence[int]) -> None:
        super().__init__(scope)
        self._cache: Dict[Tuple[int, ...], Optional[List[int]]] = {}

    def _supports(self, doms: Tuple[int, ...]) -> Optional[List[int]]:
        raise NotImplementedError

    def deduce(self, board: Board) -> Optional[Reductions]:
        doms = tuple(board.domains[var] for var in self.scope)
        if doms in self._cache:
            supports = self._cache[doms]
        else:
            if 0 in doms:
                supports = None
            else:
                supports = self._supports(doms)
            if len(self._cache) > _CACHE_LIMIT:
                self._cache.clear()
            self._cache[doms] = supports
        if supports is None:
            return None
        return [
            (var, sup) for var, dom, sup in zip(self.scope, doms, supports) if dom & ~sup
        ]


def _cage_matches(op: str, target: int, values: Sequence[int]) -> bool:
    if op == "add":
        return sum(values) == target
    if op == "mul":
        prod = 1
        for v in values:
            prod *= v
        return prod == target
    if op == "sub":
        return len(values) == 2 and abs(values[0] - values[1]) == target
    if op == "div":
        if len(values) != 2:
            return False
        hi, lo = max(values), min(values)
        return lo > 0 and hi % lo == 0 and hi // lo == target
    return len(values) == 1 and values[0] == target


class Cage(TableConstraint):
    """ケンケンのケージ。演算結果が ``target`` になる"""

    name = "cage"

    def __init__(
        self,
        scope: Sequence[int],
        op: str,
        target: int,
        cells: Sequence[Tuple[int, int]],
    ) -> None:
        super().__init__(scope)
        self.op = op
        self.target = target
        self.cells = list(cells)

    def _supports(self, doms: Tuple[int, ...]) -> Optional[List[int]]:
        n = len(doms)
        options = [list(iter_bits(dom)) for dom in doms]
        supports = [0] * n
        chosen = [0] * n
        op = self.op
        target = self.target
        cells = self.cells

        def walk(i: int, acc: int) -> None:
            if i == n:
                if _cage_matches(op, target, chosen):
                    for k in range(n):
                        supports[k] |= 1 << chosen[k]
                return
            r, c = cells[i]
            for value in options[i]:
                clash = False
                for k in range(i):
                    if chosen[k] == value and (cells[k][0] == r or cells[k][1] == c):
                        clash = True
                        break
                if clash:
                    continue
                if op == "add":
                    if acc + value > target:
                        continue
                    nxt = acc + value
                elif op == "mul":
                    if target % (acc * value) != 0:
                        continue
                    nxt = acc * value
                else:
                    nxt = acc
                chosen[i] = value
                walk(i + 1, nxt)

        walk(0, 1 if op == "mul" else 0)
        if any(sup == 0 for sup in supports):
            return None
        return supports


class LineVisibility(TableConstraint):
    """ビルの見え方のヒント (両端から見える棟数または高さの合計)

    ``front`` と ``back`` は 0 ならヒントなし。
    """

    name = "visibility"

    def __init__(
        self, scope: Sequence[int], front: int, back: int, mode: str = "count"
    ) -> None:
        super().__init__(scope)
        self.front = front
        self.back = back
        self.mode = mode

    def _seen(self, heights: Sequence[int]) -> int:
        tallest = 0
        score = 0
        for h in heights:
            if h > tallest:
                tallest = h
                score += 1 if self.mode == "count" else h
        return score

    def _supports(self, doms: Tuple[int, ...]) -> Optional[List[int]]:
        n = len(doms)
        options = [list(iter_bits(dom)) for dom in doms]
        supports = [0] * n
        chosen = [0] * n
        front = self.front
        back = self.back
        counting = self.mode == "count"

        def walk(i: int, used: int, tallest: int, score: int) -> None:
            if front and score > front:
                return
            if i == n:
                if front and score != front:
                    return
                if back and self._seen(reversed(chosen)) != back:
                    return
                for k in range(n):
                    supports[k] |= 1 << chosen[k]
                return
            for value in options[i]:
                if used >> value & 1:
                    continue
                chosen[i] = value
                if value > tallest:
                    walk(i + 1, used | 1 << value, value, score + (1 if counting else value))
                else:
                    walk(i + 1, used | 1 << value, tallest, score)

        walk(0, 0, 0, 0)
        if any(sup == 0 for sup in supports):
            return None
        return supports


class LinePattern(TableConstraint):
    """お絵かきロジックの1行分。黒の連続数の並びが ``runs`` に一致する

    値 1 が黒、0 が白。前方・後方の到達可能性を動的計画法で求め、
    どこかの配置で使われる値だけを残す。
    """

    name = "line"

    def __init__(self, scope: Sequence[int], runs: Sequence[int]) -> None:
        super().__init__(scope)
        self.runs = [k for k in runs if k > 0]

    def _supports(self, doms: Tuple[int, ...]) -> Optional[List[int]]:
        length = len(doms)
        runs = self.runs
        m = len(runs)
        can0 = [bool(dom & 1) for dom in doms]
        can1 = [bool(dom & 2) for dom in doms]
        blocked = [0] * (length + 1)
        for i in range(length):
            blocked[i + 1] = blocked[i] + (0 if can1[i] else 1)

        def fits(i: int, k: int) -> bool:
            end = i + k
            if end > length or blocked[end] - blocked[i]:
                return False
            return end == length or can0[end]

        def after(i: int, k: int) -> int:
            # 連続の直後に必要な白 1 マスまで進めた位置
            return min(i + k + 1, length)

        reach_end = [[False] * (m + 1) for _ in range(length + 1)]
        reach_end[length][m] = True
        for i in range(length - 1, -1, -1):
            for j in range(m + 1):
                ok = can0[i] and reach_end[i + 1][j]
                if not ok and j < m and fits(i, runs[j]):
                    ok = reach_end[after(i, runs[j])][j + 1]
                reach_end[i][j] = ok
        if not reach_end[0][0]:
            return None

        reached = [[False] * (m + 1) for _ in range(length + 1)]
        reached[0][0] = True
        white = [False] * length
        black = [False] * length
        for i in range(length):
            for j in range(m + 1):
                if not reached[i][j]:
                    continue
                if can0[i] and reach_end[i + 1][j]:
                    reached[i + 1][j] = True
                    white[i] = True
                if j < m and fits(i, runs[j]):
                    nxt = after(i, runs[j])
                    if reach_end[nxt][j + 1]:
                        reached[nxt][j + 1] = True
                        end = i + runs[j]
                        for t in range(i, end):
                            black[t] = True
                        if end < length:
                            white[end] = True
        return [(1 if white[i] else 0) | (2 if black[i] else 0) for i in range(length)]


class Connectivity(Constraint):
    """値 ``open_value`` のマスがひとつながりになる盤面全体の制約

    ひとかけらでも確定した開きマスがあれば、そこから到達できないマスは
    閉じるしかなく、取り除くと確定マスが分断される関節マスは開くしかない。
    """

    name = "connectivity"
    is_global = True

    def __init__(self, var_grid: Sequence[Sequence[int]], open_value: int) -> None:
        self.var_grid = [list(row) for row in var_grid]
        super().__init__([v for row in self.var_grid for v in row if v >= 0])
        self.rows = len(self.var_grid)
        self.cols = len(self.var_grid[0]) if self.rows else 0
        self.open_bit = 1 << open_value

    def _masks(self, board: Board) -> Tuple[np.ndarray, np.ndarray]:
        can = np.zeros((self.rows, self.cols), dtype=np.uint8)
        req = np.zeros((self.rows, self.cols), dtype=np.uint8)
        bit = self.open_bit
        domains = board.domains
        for r, row in enumerate(self.var_grid):
            for c, var in enumerate(row):
                if var < 0:
                    continue
                dom = domains[var]
                if dom & bit:
                    can[r, c] = 1
                    if dom == bit:
                        req[r, c] = 1
        return can, req

    def is_viable(self, board: Board) -> bool:
        can, req = self._masks(board)
        anchors = np.argwhere(req == 1)
        if len(anchors) == 0:
            return True
        seen = _flood_fill(can, int(anchors[0][0]), int(anchors[0][1]))
        return not bool(np.any((req == 1) & (seen == 0)))

    def deduce(self, board: Board) -> Optional[Reductions]:
        can, req = self._masks(board)
        anchors = np.argwhere(req == 1)
        if len(anchors) == 0:
            return []
        ar, ac = int(anchors[0][0]), int(anchors[0][1])
        seen = _flood_fill(can, ar, ac)
        if np.any((req == 1) & (seen == 0)):
            return None
        out: Reductions = []
        for r, c in np.argwhere((can == 1) & (seen == 0)):
            out.append((self.var_grid[r][c], ~self.open_bit))
        forced = _forced_open(can, req, seen, ar, ac)
        for r, c in np.argwhere(forced == 1):
            out.append((self.var_grid[r][c], self.open_bit))
        return out


__all__ = [
    "Constraint",
    "Cardinality",
    "AllDifferent",
    "SumDistinct",
    "WeightedSum",
    "LoopVertex",
    "TableConstraint",
    "Cage",
    "LineVisibility",
    "LinePattern",
    "Connectivity",
    "digit_combos",
]
