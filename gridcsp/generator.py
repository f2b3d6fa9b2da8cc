"""パズル種類を問わない盤面生成モジュール

候補盤面の作成はプラグインに任せ、このモジュールは再試行・ヒント追加・
フォールバックといった生成の流れだけを受け持つ。
"""

from __future__ import annotations

import concurrent.futures
import hashlib
import json
import logging
import random
import time
from types import ModuleType
from typing import Any, Dict, List, Mapping, Optional, Tuple, cast

from .constants import (
    DEFAULT_COUNT_TIMEOUT_S,
    DEFAULT_SOLVER_STEP_LIMIT,
    ESCALATION_LIMIT,
    RETRY_LIMIT,
    UNIQUENESS_TIMEOUT_S,
    resolve_options,
    worker_timeout_s,
)
from .puzzle_builder import Candidate, build_puzzle_dict
from .puzzle_io import save_puzzle
from .puzzle_types import Puzzle
from .puzzles import get_plugin
from .search import search
from .validators import validate_puzzle

logger = logging.getLogger(__name__)


def setup_logging(level: int = logging.INFO) -> None:
    """ログ出力の設定を行う関数

    Python の ``logging`` モジュールはアプリの動作状況を
    画面やファイルに出力する仕組みです。ここでは ``basicConfig`` を
    使ってフォーマットと出力レベルをまとめて設定します。

    :param level: 表示するログの重要度。``logging.INFO`` などを指定
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )


def _as_puzzle(kind: str, rows: int, cols: int, candidate: Candidate) -> Puzzle:
    """候補盤面をソルバーに渡せる最小限の辞書にする"""
    puzzle: Puzzle = {"type": kind, "size": {"rows": rows, "cols": cols}}
    puzzle.update(candidate.fields)
    return puzzle


def _count_solutions(
    plugin: ModuleType,
    candidate: Candidate,
    rows: int,
    cols: int,
    deadline: float,
) -> Optional[int]:
    """候補の解を2個まで数える。時間内に確定できなければ ``None``

    1 回の確認にかける時間は ``deadline`` までの残り時間を超えない。
    """

    budget = min(UNIQUENESS_TIMEOUT_S, deadline - time.perf_counter())
    if budget <= 0:
        return None
    puzzle = _as_puzzle(plugin.TYPE, rows, cols, candidate)
    result = search(plugin.build_model(puzzle), mode="count", limit=2, timeout_s=budget)
    if result.complete or result.count >= 2:
        return result.count
    if time.perf_counter() > deadline:
        return None
    confirm = getattr(plugin, "confirm_unique", None)
    if confirm is None:
        return None
    try:
        return 1 if confirm(candidate, rows, cols) else 2
    except TimeoutError as exc:
        logger.warning("一意性の確認を打ち切りました: %s", exc)
        return None


def _rank(count: Optional[int]) -> int:
    """最良候補の比較用。小さいほど良い"""
    if count is None:
        return 1
    if count == 0:
        return 3
    return 2


def _solver_stats(plugin: ModuleType, puzzle: Puzzle) -> Dict[str, Any]:
    result = search(
        plugin.build_model(puzzle),
        mode="count",
        limit=2,
        timeout_s=DEFAULT_COUNT_TIMEOUT_S,
        step_limit=DEFAULT_SOLVER_STEP_LIMIT,
    )
    stats: Dict[str, Any] = dict(result.stats)
    stats["status"] = result.status.value
    return stats


def generate_puzzle(
    puzzle_type: str,
    rows: int,
    cols: int,
    *,
    options: Optional[Mapping[str, Any]] = None,
    seed: int | None = None,
    timeout_s: float | None = None,
    require_unique: bool | None = None,
    allow_fallback: bool = True,
    return_stats: bool = False,
) -> Puzzle | tuple[Puzzle, Dict[str, Any]]:
    """盤面を生成して返す

    :param puzzle_type: ``puzzle_types()`` に含まれる種類名
    :param rows: 盤面の行数。プラグインの範囲へ丸める
    :param cols: 盤面の列数
    :param options: 種類ごとの生成オプション。未指定の項目は既定値
    :param seed: 乱数シード。再現したいときに指定する
    :param timeout_s: 生成処理全体のタイムアウト秒。``None`` なら盤面サイズから決める
    :param require_unique: 一意解の盤面だけを受け入れるか。``None`` ならオプションの値
    :param allow_fallback: すべて失敗したときにフォールバック盤面を返すか
    :param return_stats: True なら生成統計も返す
    :return: 生成したパズル。``return_stats`` が True の場合は
        ``(Puzzle, dict)`` のタプルを返す

    一意性を確かめられた盤面は ``"uniqueness": "unique"``、確かめられなかった
    盤面は ``"uncertain"`` として返す。
    """

    plugin = get_plugin(puzzle_type)
    rows, cols = plugin.clamp_size(rows, cols)
    opts = resolve_options(plugin.OPTIONS, options)
    if require_unique is None:
        require_unique = bool(opts.get("requireUnique", True))
    if timeout_s is None:
        timeout_s = worker_timeout_s(rows, cols)

    # 乱数生成器を作成。シードを指定すると結果を再現できる
    rng = random.Random(seed)

    generation_params = {
        "type": puzzle_type,
        "rows": rows,
        "cols": cols,
        "seed": seed,
        "options": opts,
        "requireUnique": require_unique,
        "timeoutS": timeout_s,
    }
    seed_hash = hashlib.sha256(str(seed).encode("utf-8")).hexdigest()

    start_time = time.perf_counter()
    deadline = start_time + timeout_s
    logger.info("盤面生成開始: %s %dx%d options=%s", puzzle_type, rows, cols, opts)

    cell_limit = getattr(plugin, "UNIQUE_CELL_LIMIT", None)
    tighten = getattr(plugin, "tighten", None)

    accepted: Candidate | None = None
    unique = False
    best: Candidate | None = None
    best_rank = 4
    attempts = 0
    escalations = 0
    timed_out = False
    for attempt in range(RETRY_LIMIT):
        if time.perf_counter() > deadline:
            timed_out = True
            break
        attempts = attempt + 1
        candidate = plugin.build_candidate(rows, cols, opts, rng)
        if candidate is None:
            logger.warning("候補盤面を作れなかったため再試行します (%d 回目)", attempts)
            continue

        puzzle = _as_puzzle(puzzle_type, rows, cols, candidate)
        if not plugin.is_solved(puzzle, candidate.solution):
            logger.warning("埋め込み解が盤面の規則を満たさないため破棄します")
            continue

        if cell_limit is not None and rows * cols > cell_limit:
            # 盤面が大きすぎるときは一意性を調べない
            accepted = candidate
            break

        count = _count_solutions(plugin, candidate, rows, cols, deadline)
        round_ = 0
        while (
            count != 1
            and tighten is not None
            and round_ < ESCALATION_LIMIT
            and time.perf_counter() <= deadline
        ):
            if not tighten(candidate, rng):
                break
            round_ += 1
            escalations += 1
            count = _count_solutions(plugin, candidate, rows, cols, deadline)
            logger.debug("ヒント追加 %d 回目: 解の数=%s", round_, count)

        if count == 1:
            accepted = candidate
            unique = True
            break
        if not require_unique:
            accepted = candidate
            break

        rank = _rank(count)
        if rank <= best_rank:
            best, best_rank = candidate, rank
        logger.warning("一意解にならなかったため再試行します (解の数=%s)", count)

    partial = False
    reason: str | None = None
    if accepted is None and best is not None:
        accepted = best
        if timed_out:
            partial, reason = True, "timeout"
    if accepted is None:
        if not allow_fallback:
            raise TimeoutError("generation timed out")
        logger.warning("生成に失敗したためフォールバック盤面を使用します")
        accepted = plugin.fallback(rows, cols, opts, rng)
        partial, reason = True, "fallback"
        if cell_limit is None or rows * cols <= cell_limit:
            unique = _count_solutions(plugin, accepted, rows, cols, deadline) == 1

    fields = _as_puzzle(puzzle_type, rows, cols, accepted)
    solver_stats = _solver_stats(plugin, fields)
    puzzle = build_puzzle_dict(
        kind=puzzle_type,
        rows=rows,
        cols=cols,
        fields=accepted.fields,
        solution=accepted.solution,
        unique=unique,
        solver_stats=solver_stats,
        generation_params=generation_params,
        seed_hash=seed_hash,
        difficulty=opts.get("difficulty"),
        partial=partial,
        reason=reason,
    )

    # 生成した結果が規則を満たすか最後に確認する
    validate_puzzle(puzzle)

    elapsed = time.perf_counter() - start_time
    logger.info(
        "盤面生成終了: %.3f 秒 uniqueness=%s partial=%s",
        elapsed,
        puzzle["uniqueness"],
        partial,
    )
    if return_stats:
        stats = {
            "attempts": attempts,
            "escalations": escalations,
            "solver_steps": solver_stats.get("steps", 0),
            "solver_max_depth": solver_stats.get("max_depth", 0),
            "elapsed_s": elapsed,
        }
        return puzzle, stats
    return puzzle


def _difficulty_choices(plugin: ModuleType, options: Mapping[str, Any]) -> List[Any]:
    """難易度オプションを持つ種類は各難易度を、それ以外は1種類だけ返す"""
    spec = plugin.OPTIONS.get("difficulty")
    if spec is None or spec.choices is None or "difficulty" in options:
        return [None]
    return list(spec.choices)


def generate_multiple_puzzles(
    puzzle_type: str,
    rows: int,
    cols: int,
    count_each: int,
    *,
    options: Optional[Mapping[str, Any]] = None,
    seed: int | None = None,
    jobs: int | None = None,
    worker_log_level: int = logging.WARNING,
) -> List[Puzzle]:
    """各難易度を同数生成して一覧で返す

    難易度オプションのない種類では ``count_each`` 個だけ生成する。

    :param count_each: 各難易度の生成数
    :param seed: 乱数シード。再現したいときに指定する
    :param jobs: 並列生成プロセス数。1 以下なら逐次生成
    :param worker_log_level: 並列処理のログレベル。WARNING 以上のみ表示する
    """

    if count_each <= 0:
        raise ValueError("count_each は 1 以上を指定してください")

    plugin = get_plugin(puzzle_type)
    base_options = dict(options or {})
    logger.info(
        "複数盤面生成開始 type=%s rows=%d cols=%d count_each=%d",
        puzzle_type,
        rows,
        cols,
        count_each,
    )
    start_time = time.perf_counter()

    if seed is None:
        seed = random.randint(0, 2**32 - 1)

    tasks: List[Tuple[Dict[str, Any], int]] = []
    seed_offset = 0
    for difficulty in _difficulty_choices(plugin, base_options):
        task_options = dict(base_options)
        if difficulty is not None:
            task_options["difficulty"] = difficulty
        for _ in range(count_each):
            tasks.append((task_options, seed + seed_offset))
            seed_offset += 1

    puzzles: List[Puzzle] = []
    if jobs is None or jobs <= 1:
        for task_options, puzzle_seed in tasks:
            puzzle_obj = generate_puzzle(
                puzzle_type, rows, cols, options=task_options, seed=puzzle_seed
            )
            puzzles.append(cast(Puzzle, puzzle_obj))
    else:
        with concurrent.futures.ProcessPoolExecutor(
            max_workers=jobs,
            initializer=setup_logging,
            initargs=(worker_log_level,),
        ) as executor:
            futures = [
                executor.submit(
                    generate_puzzle,
                    puzzle_type,
                    rows,
                    cols,
                    options=task_options,
                    seed=puzzle_seed,
                )
                for task_options, puzzle_seed in tasks
            ]
            # 投入順に並べて返すため as_completed は使わない
            for future in futures:
                try:
                    puzzle_obj = future.result()
                except Exception as exc:  # noqa: BLE001
                    logger.warning("並列生成失敗: %s", exc)
                    continue
                puzzles.append(cast(Puzzle, puzzle_obj))

    logger.info("複数盤面生成終了: %.3f 秒", time.perf_counter() - start_time)
    return puzzles


def parse_option(text: str) -> Tuple[str, Any]:
    """``key=value`` 形式のコマンドライン引数を解釈する

    値は JSON として読めればその型に、読めなければ文字列のまま使う。
    """

    key, sep, raw = text.partition("=")
    if not sep or not key:
        raise ValueError(f"オプションは key=value 形式で指定してください: {text!r}")
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        value = raw
    return key, value


if __name__ == "__main__":
    import argparse

    from .puzzles import puzzle_types

    # ログ設定を行う。デフォルトは INFO レベル
    setup_logging()

    parser = argparse.ArgumentParser(description="パズル盤面を1つ生成して保存します")
    parser.add_argument("puzzle_type", choices=puzzle_types(), help="パズルの種類")
    parser.add_argument("rows", type=int, help="盤面の行数")
    parser.add_argument("cols", type=int, help="盤面の列数")
    parser.add_argument("--seed", type=int, default=None, help="乱数シード")
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="タイムアウト秒数 (指定しない場合は盤面サイズから決める)",
    )
    parser.add_argument(
        "--option",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="生成オプション。複数指定可",
    )
    parser.add_argument("--output", default="data", help="保存先ディレクトリ")
    args = parser.parse_args()

    pzl = cast(
        Puzzle,
        generate_puzzle(
            args.puzzle_type,
            args.rows,
            args.cols,
            options=dict(parse_option(o) for o in args.option),
            seed=args.seed,
            timeout_s=args.timeout,
        ),
    )
    path = save_puzzle(pzl, args.output)
    print(f"{path} を作成しました (uniqueness={pzl['uniqueness']})")
