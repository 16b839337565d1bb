import time
import logging
import dataclasses
from concurrent.futures import ThreadPoolExecutor, Future, wait
from pathlib import Path
from typing import Callable

from .config import DiscoveryConfig
from .models import DiscoveredTask, DiscoverySnapshot, WORKING, WAITING, DONE
from .window_name import WindowCodec, classify_prefix, fold_status
from .window_map import WindowNameMap, WindowMapError, resolve
from .collectors.pane import scrape
from .collectors.tmux import TmuxClient, TmuxError, list_sockets

logger = logging.getLogger(__name__)


class DiscoveryCancelled(Exception):
    """本轮发现超过截止时间，结果整体丢弃"""


class TaskDiscoveryService:
    """扫描所有 PAW tmux server，按 Working / Waiting / Done 分组返回任务"""

    def __init__(
        self,
        config: DiscoveryConfig | None = None,
        client_factory: Callable[[str], TmuxClient] | None = None,
        window_map: WindowNameMap | None = None,
    ):
        self.config = config or DiscoveryConfig()
        self.codec = WindowCodec(self.config)
        self.window_map = window_map or WindowNameMap(self.config, self.codec)
        self.client_factory = client_factory or (
            lambda socket: TmuxClient(socket, timeout=self.config.command_timeout)
        )

    def discover_all(self, deadline: float | None = None) -> DiscoverySnapshot:
        """deadline 为 time.monotonic() 时间点；超时抛 DiscoveryCancelled"""
        if deadline is None and self.config.pass_timeout > 0:
            deadline = time.monotonic() + self.config.pass_timeout

        sockets = list_sockets(self.config)
        if not sockets:
            return DiscoverySnapshot()

        executor = ThreadPoolExecutor(max_workers=max(1, self.config.max_workers))
        try:
            # 先按 socket 并行列窗口，再对 Working 任务并行抓 pane
            scans = [executor.submit(self._scan_socket, s) for s in sockets]
            self._wait(scans, deadline)

            found: list[tuple[DiscoveredTask, TmuxClient]] = []
            for socket, fut in zip(sockets, scans):
                try:
                    found.extend(fut.result())
                except Exception:
                    logger.exception("扫描 socket %s 出错，已跳过", socket)

            tasks = [
                dataclasses.replace(task, observed_order=order)
                for order, (task, _) in enumerate(found)
            ]
            captures = {
                i: executor.submit(self._capture, client, task)
                for i, (task, client) in enumerate(found)
                if task.status == WORKING
            }
            self._wait(list(captures.values()), deadline)
            for i, fut in captures.items():
                try:
                    snap = fut.result()
                except Exception:
                    logger.exception("解析窗口 %s 的 pane 出错", tasks[i].window_id)
                    continue
                if snap is not None:
                    tasks[i] = dataclasses.replace(
                        tasks[i],
                        preview=snap.preview,
                        current_action=snap.current_action,
                        duration=snap.duration,
                        tokens=snap.tokens,
                    )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return _bucket(tasks)

    @staticmethod
    def _wait(futures: list[Future], deadline: float | None):
        if not futures:
            return
        timeout = None if deadline is None else max(0.0, deadline - time.monotonic())
        _, pending = wait(futures, timeout=timeout)
        if pending:
            for fut in pending:
                fut.cancel()
            raise DiscoveryCancelled(f"{len(pending)} 项未在截止时间前完成")

    def _scan_socket(self, socket: str) -> list[tuple[DiscoveredTask, TmuxClient]]:
        session = socket.removeprefix(self.config.socket_prefix)
        client = self.client_factory(socket)

        try:
            if not client.has_session(session):
                return []
        except TmuxError:
            # socket 可能比 session 多活一会儿
            return []

        token_map = self._token_map(self._resolve_workspace(client, session))

        try:
            windows = client.list_windows(session)
        except TmuxError as e:
            logger.warning("无法列出会话 %s 的窗口: %s", session, e)
            return []

        results = []
        for w in windows:
            token, status, is_task = classify_prefix(w.name)
            if not is_task:
                continue
            task = DiscoveredTask(
                name=resolve(token, token_map),
                session=session,
                status=status,
                window_id=w.id,
            )
            results.append((task, client))
        return results

    def _resolve_workspace(self, client: TmuxClient, session: str) -> Path | None:
        try:
            session_path = client.session_path(session)
        except TmuxError as e:
            logger.debug("无法获取会话 %s 的路径: %s", session, e)
            return None
        if not session_path:
            return None
        workspace = Path(session_path) / self.config.workspace_dir_name
        return workspace if workspace.is_dir() else None

    def _token_map(self, workspace: Path | None) -> dict[str, str]:
        if workspace is None:
            return {}
        try:
            return self.window_map.merged(workspace)
        except WindowMapError as e:
            logger.warning("窗口映射损坏，仅使用目录推导: %s", e)
            return self.window_map.build_fallback(workspace)

    def _capture(self, client: TmuxClient, task: DiscoveredTask):
        # pane .0 是 agent 所在 pane
        target = f"{task.window_id}.0"
        try:
            capture = client.capture_pane(target, self.config.capture_lines)
        except TmuxError as e:
            logger.debug("抓取 %s/%s 失败: %s", task.session, target, e)
            return None
        return scrape(capture)


def find_task_window(client: TmuxClient, session: str, codec: WindowCodec, task_name: str):
    """按完整任务名找窗口，三代 token 格式都认；找不到返回 None"""
    for w in client.list_windows(session):
        token, is_task = codec.decode(w.name)
        if is_task and codec.matches(token, task_name):
            return w
    return None


def _bucket(tasks: list[DiscoveredTask]) -> DiscoverySnapshot:
    buckets: dict[str, list[DiscoveredTask]] = {WORKING: [], WAITING: [], DONE: []}
    for task in sorted(tasks, key=lambda t: t.observed_order):
        buckets[fold_status(task.status)].append(task)
    return DiscoverySnapshot(
        working=buckets[WORKING], waiting=buckets[WAITING], done=buckets[DONE]
    )
