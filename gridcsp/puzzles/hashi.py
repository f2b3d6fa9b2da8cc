"""橋をかけろ (Hashiwokakero) のモデル化・判定・生成

島は ``{"r", "c", "count"}`` の辞書で表し、同じ行または列で隣り合う
島の組ごとに橋の本数 0/1/2 を変数として持つ。
"""

from __future__ import annotations

import logging
import random
from typing import Any, Dict, List, Optional, Tuple

from ..board import Board
from ..constraints import Cardinality, Constraint, Reductions, WeightedSum
from ..model import Model
from ..puzzle_builder import Candidate
from ..puzzle_types import MalformedPuzzleError, Puzzle
from ..validators import edges_cross
from .common import clamp_dims, read_size

logger = logging.getLogger(__name__)

TYPE = "hashi"

OPTIONS: Dict[str, Any] = {}

BRIDGE_VALUES = 0b111  # 0, 1, 2 本
ON_MASK = 0b110  # 1 本以上

Point = Tuple[int, int]
Pair = Tuple[int, int]  # 島番号の組


def clamp_size(rows: int, cols: int) -> Tuple[int, int]:
    return clamp_dims(rows, cols, 3, 30)


def _read_islands(puzzle: Puzzle) -> List[Tuple[int, int, int]]:
    rows, cols = read_size(puzzle)
    raw = puzzle.get("islands")
    if not isinstance(raw, list):
        raise MalformedPuzzleError("islands フィールドが存在しません")
    islands = []
    seen = set()
    for i, isl in enumerate(raw):
        if not isinstance(isl, dict):
            raise MalformedPuzzleError(f"islands[{i}] が辞書ではありません")
        r, c, count = isl.get("r"), isl.get("c"), isl.get("count")
        if not all(isinstance(v, int) for v in (r, c, count)):
            raise MalformedPuzzleError(f"islands[{i}] の値が整数ではありません")
        if not (0 <= r < rows and 0 <= c < cols):
            raise MalformedPuzzleError(f"islands[{i}] が盤面の外にあります")
        if not 1 <= count <= 8:
            raise MalformedPuzzleError(f"islands[{i}] の数字 {count} は 1-8 の範囲外です")
        if (r, c) in seen:
            raise MalformedPuzzleError(f"islands[{i}] と同じ位置に別の島があります")
        seen.add((r, c))
        islands.append((r, c, count))
    return islands


def neighbor_pairs(points: List[Point]) -> List[Pair]:
    """同じ行・列で隣り合う島の組。間に島がある組は含めない"""

    by_row: Dict[int, List[int]] = {}
    by_col: Dict[int, List[int]] = {}
    for i, (r, c) in enumerate(points):
        by_row.setdefault(r, []).append(i)
        by_col.setdefault(c, []).append(i)
    pairs: List[Pair] = []
    for line in by_row.values():
        line.sort(key=lambda i: points[i][1])
        pairs.extend(zip(line, line[1:]))
    for line in by_col.values():
        line.sort(key=lambda i: points[i][0])
        pairs.extend(zip(line, line[1:]))
    return pairs


def _crossings(points: List[Point], pairs: List[Pair]) -> List[Tuple[int, int]]:
    result = []
    for i, (a, b) in enumerate(pairs):
        for j in range(i + 1, len(pairs)):
            c, d = pairs[j]
            if edges_cross(points[a], points[b], points[c], points[d]):
                result.append((i, j))
    return result


def _reaches_all(n: int, edges: List[Pair]) -> bool:
    if n == 0:
        return True
    adj: List[List[int]] = [[] for _ in range(n)]
    for a, b in edges:
        adj[a].append(b)
        adj[b].append(a)
    seen = {0}
    stack = [0]
    while stack:
        i = stack.pop()
        for j in adj[i]:
            if j not in seen:
                seen.add(j)
                stack.append(j)
    return len(seen) == n


class BridgeConnectivity(Constraint):
    """橋になり得る辺だけで全島がつながる見込みが残っているか"""

    name = "bridges"
    is_global = True

    def __init__(self, pairs: List[Pair], island_count: int) -> None:
        super().__init__(range(len(pairs)))
        self.pairs = pairs
        self.island_count = island_count

    def deduce(self, board: Board) -> Optional[Reductions]:
        domains = board.domains
        possible = [pair for var, pair in enumerate(self.pairs) if domains[var] & ON_MASK]
        if not _reaches_all(self.island_count, possible):
            return None
        return []


def _layout(puzzle: Puzzle) -> Tuple[List[Tuple[int, int, int]], List[Point], List[Pair]]:
    islands = _read_islands(puzzle)
    points = [(r, c) for r, c, _ in islands]
    return islands, points, neighbor_pairs(points)


def build_model(puzzle: Puzzle) -> Model:
    islands, points, pairs = _layout(puzzle)
    counts = [count for _, _, count in islands]
    domains = []
    for a, b in pairs:
        dom = BRIDGE_VALUES
        if len(islands) > 2:
            # 1 と 1、2 と 2 を結び切ると二島だけで閉じてしまう
            if counts[a] == counts[b] == 1:
                dom = 0b001
            elif counts[a] == counts[b] == 2:
                dom = 0b011
        domains.append(dom)
    incident: List[List[int]] = [[] for _ in islands]
    for var, (a, b) in enumerate(pairs):
        incident[a].append(var)
        incident[b].append(var)
    constraints: List[Constraint] = []
    for i, count in enumerate(counts):
        if not incident[i]:
            raise MalformedPuzzleError(f"島 {points[i]} から橋をかけられる相手がいません")
        constraints.append(WeightedSum(incident[i], count))
    for i, j in _crossings(points, pairs):
        constraints.append(Cardinality([i, j], ON_MASK, 0, 1, name="crossing"))

    def tie_break(board: Board, var: int) -> float:
        a, b = pairs[var]
        return counts[a] + counts[b]

    return Model(
        domains,
        constraints,
        global_constraints=[BridgeConnectivity(pairs, len(islands))],
        value_order=[2, 1, 0],
        tie_break=tie_break,
    )


def decode(puzzle: Puzzle, values: List[int]) -> List[Dict[str, Any]]:
    _, points, pairs = _layout(puzzle)
    bridges = []
    for (a, b), v in zip(pairs, values):
        if v > 0:
            bridges.append({"a": list(points[a]), "b": list(points[b]), "count": v})
    return bridges


def _read_bridges(points: List[Point], pairs: List[Pair], state: Any) -> Optional[Dict[int, int]]:
    """プレイヤーの橋一覧を {変数番号: 本数} に直す。読めなければ None"""
    if not isinstance(state, list):
        return None
    index = {}
    for var, (a, b) in enumerate(pairs):
        index[(points[a], points[b])] = var
        index[(points[b], points[a])] = var
    result: Dict[int, int] = {}
    for bridge in state:
        if not isinstance(bridge, dict):
            return None
        try:
            a = (int(bridge["a"][0]), int(bridge["a"][1]))
            b = (int(bridge["b"][0]), int(bridge["b"][1]))
        except (KeyError, TypeError, ValueError, IndexError):
            return None
        count = bridge.get("count")
        var = index.get((a, b))
        if var is None or count not in (1, 2) or var in result:
            return None
        result[var] = count
    return result


def encode(puzzle: Puzzle, state: Any) -> Dict[int, int]:
    _, points, pairs = _layout(puzzle)
    return _read_bridges(points, pairs, state) or {}


def is_solved(puzzle: Puzzle, state: Any) -> bool:
    """島の数字・交差なし・全島の連結をすべて満たすか"""

    islands, points, pairs = _layout(puzzle)
    chosen = _read_bridges(points, pairs, state)
    if chosen is None:
        return False
    degree = [0] * len(islands)
    for var, count in chosen.items():
        a, b = pairs[var]
        degree[a] += count
        degree[b] += count
    if any(d != count for d, (_, _, count) in zip(degree, islands)):
        return False
    used = list(chosen)
    for i, x in enumerate(used):
        for y in used[i + 1 :]:
            a, b = pairs[x]
            c, d = pairs[y]
            if edges_cross(points[a], points[b], points[c], points[d]):
                return False
    return _reaches_all(len(islands), [pairs[var] for var in used])


# ---------------------------------------------------------------------------
# 生成
# ---------------------------------------------------------------------------


def _place_islands(rows: int, cols: int, rng: random.Random) -> List[Point]:
    step = max(2, min(rows, cols) // 5)
    points = []
    for r in range(1, rows - 1, step):
        for c in range(1, cols - 1, step):
            if rng.random() < 0.7:
                points.append((r, c))
    return points


def _connect(points: List[Point], rng: random.Random) -> Dict[Pair, int]:
    """交差を避けながら乱択クラスカル法で全域木を作り、辺を少し足す"""

    pairs = neighbor_pairs(points)
    rng.shuffle(pairs)
    parent = list(range(len(points)))

    def find(x: int) -> int:
        while parent[x] != x:
            parent[x] = parent[parent[x]]
            x = parent[x]
        return x

    edges: Dict[Pair, int] = {}

    def crosses(pair: Pair) -> bool:
        a, b = pair
        return any(
            edges_cross(points[a], points[b], points[c], points[d]) for c, d in edges
        )

    for pair in pairs:
        ra, rb = find(pair[0]), find(pair[1])
        if ra != rb and not crosses(pair):
            edges[pair] = 2 if rng.random() < 0.25 else 1
            parent[ra] = rb
    for pair in pairs:
        if len(edges) > len(points) * 2:
            break
        if pair not in edges and rng.random() < 0.35 and not crosses(pair):
            edges[pair] = 1
    return edges


def _candidate(points: List[Point], edges: Dict[Pair, int]) -> Candidate:
    degree = [0] * len(points)
    for (a, b), count in edges.items():
        degree[a] += count
        degree[b] += count
    islands = [{"r": r, "c": c, "count": d} for (r, c), d in zip(points, degree)]
    solution = [
        {"a": list(points[a]), "b": list(points[b]), "count": count}
        for (a, b), count in edges.items()
    ]
    return Candidate({"islands": islands}, solution)


def build_candidate(
    rows: int, cols: int, opts: Dict[str, Any], rng: random.Random
) -> Optional[Candidate]:
    points = _place_islands(rows, cols, rng)
    if len(points) < 4:
        return None
    edges = _connect(points, rng)
    used = {i for pair in edges for i in pair}
    if len(used) != len(points):
        # 孤立した島を取り除いて番号を振り直す
        keep = sorted(used)
        remap = {old: new for new, old in enumerate(keep)}
        points = [points[i] for i in keep]
        edges = {(remap[a], remap[b]): v for (a, b), v in edges.items()}
    if len(points) < 2 or not _reaches_all(len(points), list(edges)):
        logger.warning("島が連結にならなかったため配置をやり直します")
        return None
    return _candidate(points, edges)


def fallback(rows: int, cols: int, opts: Dict[str, Any], rng: random.Random) -> Candidate:
    """中央の島から上下左右へ1本ずつ橋を伸ばした十字形"""
    mr, mc = rows // 2, cols // 2
    points = [(mr, mc), (0, mc), (rows - 1, mc), (mr, 0), (mr, cols - 1)]
    edges = {(0, i): rng.choice((1, 2)) for i in range(1, 5)}
    return _candidate(points, edges)


__all__ = [
    "TYPE",
    "OPTIONS",
    "BridgeConnectivity",
    "neighbor_pairs",
    "clamp_size",
    "build_model",
    "decode",
    "encode",
    "is_solved",
    "build_candidate",
    "fallback",
]
