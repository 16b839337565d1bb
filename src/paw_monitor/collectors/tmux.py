import subprocess
import logging
from dataclasses import dataclass

from ..config import DiscoveryConfig

logger = logging.getLogger(__name__)

WINDOW_FORMAT = "#{window_id}|#{window_index}|#{window_name}|#{window_active}"


class TmuxError(RuntimeError):
    """tmux 命令失败或超时"""


@dataclass(frozen=True)
class Window:
    id: str
    index: int
    name: str
    active: bool


def list_sockets(config: DiscoveryConfig) -> list[str]:
    """列出 socket 目录下所有带前缀的 tmux socket"""
    socket_dir = config.resolve_socket_dir()
    try:
        entries = list(socket_dir.iterdir())
    except FileNotFoundError:
        # tmux 尚未运行
        return []
    except OSError as e:
        logger.warning("无法读取 tmux socket 目录 %s: %s", socket_dir, e)
        return []
    return sorted(e.name for e in entries if e.name.startswith(config.socket_prefix))


class TmuxClient:
    """单个 tmux server（-L socket）上的命令封装"""

    def __init__(self, socket: str, timeout: float = 10.0):
        self.socket = socket
        self.timeout = timeout

    def _run(self, *args: str) -> str:
        cmd = ["tmux", "-L", self.socket, *args]
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, timeout=self.timeout
            )
        except subprocess.TimeoutExpired as e:
            raise TmuxError(f"tmux 命令超时 ({self.timeout}s): {' '.join(args)}") from e
        except OSError as e:
            raise TmuxError(f"无法执行 tmux: {e}") from e
        if result.returncode != 0:
            raise TmuxError(f"tmux {args[0]} 失败: {result.stderr.strip()}")
        return result.stdout

    def has_session(self, name: str) -> bool:
        try:
            self._run("has-session", "-t", name)
        except TmuxError:
            return False
        return True

    def list_windows(self, session: str) -> list[Window]:
        output = self._run("list-windows", "-t", session, "-F", WINDOW_FORMAT)
        windows = []
        for line in output.splitlines():
            parts = line.split("|")
            if len(parts) < 4:
                continue
            # 窗口名里可能带 "|"
            win_id, index, active = parts[0], parts[1], parts[-1]
            name = "|".join(parts[2:-1])
            try:
                idx = int(index)
            except ValueError:
                idx = 0
            windows.append(Window(id=win_id, index=idx, name=name, active=active == "1"))
        return windows

    def capture_pane(self, target: str, max_lines: int = 0) -> str:
        args = ["capture-pane", "-p", "-t", target]
        if max_lines > 0:
            args += ["-S", f"-{max_lines}"]
        return self._run(*args)

    def session_path(self, session: str) -> str:
        return self._run("display-message", "-p", "-t", session, "#{session_path}").strip()

    def rename_window(self, target: str, name: str) -> None:
        self._run("rename-window", "-t", target, name)
