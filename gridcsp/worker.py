"""別プロセスで生成・解答を実行する軽量プール実装

リクエストは ``{"reqId", "kind": "generate"|"solve"|"count"|"isSolved", ...}``
の辞書で渡し、応答は ``{"reqId", "kind", "ok", "data"|"err"}`` で返る。
"""

from __future__ import annotations

import logging
import multiprocessing as mp
import multiprocessing.pool
from typing import Any, Dict, Optional

from . import api
from .constants import DEFAULT_COUNT_TIMEOUT_S, DEFAULT_SOLVE_TIMEOUT_S, worker_timeout_s
from .generator import setup_logging

logger = logging.getLogger(__name__)

# forkserver を使うことで不要なファイルディスクリプタを継承せず、
# プロセス数が多い場合でも安定して動作する
CTX = mp.get_context("forkserver")

# 使い回すプールを保持するグローバル変数
_pool: Optional[multiprocessing.pool.Pool] = None

REQUEST_KINDS = ("generate", "solve", "count", "isSolved")


def _dispatch(request: Dict[str, Any]) -> Any:
    kind = request.get("kind")
    if kind == "generate":
        return api.generate(
            request["puzzleType"],
            request["size"],
            request.get("options"),
            seed=request.get("seed"),
            timeout_s=request.get("timeoutS"),
        )
    if kind == "solve":
        outcome = api.solve_with_status(
            request["puzzle"],
            request.get("timeoutS", DEFAULT_SOLVE_TIMEOUT_S),
            state=request.get("state"),
            seed=request.get("seed"),
        )
        return {
            "status": outcome.status.value,
            "solution": outcome.solution,
            "stats": outcome.stats,
        }
    if kind == "count":
        return api.count_solutions(
            request["puzzle"],
            request.get("limit", 2),
            request.get("timeoutS", DEFAULT_COUNT_TIMEOUT_S),
        )
    if kind == "isSolved":
        return api.is_solved(request["puzzle"], request.get("state"))
    raise ValueError(f"kind は {REQUEST_KINDS} のいずれかで指定: {kind!r}")


def handle_request(request: Dict[str, Any]) -> Dict[str, Any]:
    """リクエストを1件処理して応答辞書を返す

    例外が発生しても親プロセスがハングしないよう結果に含めて返す。
    """
    response: Dict[str, Any] = {"reqId": request.get("reqId"), "kind": request.get("kind")}
    try:
        response["data"] = _dispatch(request)
        response["ok"] = True
    except Exception as exc:  # noqa: BLE001
        # 例外内容を文字列化して親に返す
        response["ok"] = False
        response["err"] = str(exc)
    return response


def _ensure_pool(jobs: Optional[int], log_level: int) -> multiprocessing.pool.Pool:
    """プールを生成し必要なら既存のものを再利用する"""
    global _pool
    if _pool is None:
        proc = jobs if jobs is not None else min(4, CTX.cpu_count())
        _pool = CTX.Pool(
            processes=proc,
            maxtasksperchild=20,
            initializer=setup_logging,
            initargs=(log_level,),
        )
    return _pool


def close_pool() -> None:
    """生成済みプールを終了させるヘルパー"""
    global _pool
    if _pool is not None:
        _pool.terminate()
        _pool.join()
        _pool = None


def _default_timeout(request: Dict[str, Any]) -> float:
    """盤面サイズに応じた待ち時間。サイズが分からなければ最小値"""
    size = request.get("size")
    if size is None and isinstance(request.get("puzzle"), dict):
        size = request["puzzle"].get("size")
    try:
        rows, cols = api.parse_size(size)
    except ValueError:
        rows, cols = 0, 0
    return worker_timeout_s(rows, cols)


def submit(
    request: Dict[str, Any],
    *,
    timeout_s: float | None = None,
    jobs: int | None = None,
    worker_log_level: int = logging.WARNING,
) -> Dict[str, Any]:
    """プールのワーカーでリクエストを実行し、応答を待って返す

    ``timeout_s`` 以内に応答がなければ ``{"ok": True, "status": "timed-out"}``
    を返す。その場合ワーカーは作り直す。
    """

    pool = _ensure_pool(jobs, worker_log_level)
    async_res = pool.apply_async(handle_request, (request,))
    if timeout_s is None:
        timeout_s = _default_timeout(request)
    try:
        return async_res.get(timeout=timeout_s)
    except CTX.TimeoutError:
        logger.warning("ワーカーが %.1f 秒以内に応答しませんでした", timeout_s)
        # 実行中のタスクは止められないためプールごと捨てる
        close_pool()
        return {
            "reqId": request.get("reqId"),
            "kind": request.get("kind"),
            "ok": True,
            "status": "timed-out",
        }


__all__ = ["REQUEST_KINDS", "handle_request", "submit", "close_pool"]
