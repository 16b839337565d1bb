import json
import logging
from pathlib import Path

from .config import DiscoveryConfig
from .window_name import WindowCodec

logger = logging.getLogger(__name__)


class WindowMapError(Exception):
    """window-map.json 存在但无法读取或格式错误"""


class WindowNameMap:
    """token → 完整任务名 的持久化映射，用于还原被截断的窗口名"""

    def __init__(self, config: DiscoveryConfig | None = None, codec: WindowCodec | None = None):
        self.config = config or DiscoveryConfig()
        self.codec = codec or WindowCodec(self.config)

    def path(self, workspace_dir: str | Path) -> Path:
        return Path(workspace_dir) / self.config.window_map_file

    def load(self, workspace_dir: str | Path) -> dict[str, str]:
        """文件不存在返回空表；存在但损坏则抛 WindowMapError"""
        map_path = self.path(workspace_dir)
        try:
            raw = map_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise WindowMapError(f"无法读取 {map_path}: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise WindowMapError(f"{map_path} 不是合法 JSON: {e}") from e
        if not isinstance(data, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in data.items()
        ):
            raise WindowMapError(f"{map_path} 应为 token→任务名 的 JSON 对象")
        return data

    def record(self, workspace_dir: str | Path, task_name: str) -> str:
        """写入 token → task_name 并整文件重写，返回 token"""
        token = self.codec.encode(task_name)
        map_path = self.path(workspace_dir)
        map_path.parent.mkdir(parents=True, exist_ok=True)

        mapping = self.load(workspace_dir)
        mapping[token] = task_name
        map_path.write_text(
            json.dumps(mapping, indent=2, ensure_ascii=False), encoding="utf-8"
        )
        logger.debug("记录窗口映射：%s → %s", token, task_name)
        return token

    def build_fallback(self, workspace_dir: str | Path) -> dict[str, str]:
        """按 agents/ 下的任务目录推导 token（新旧两种格式都登记）"""
        mapping: dict[str, str] = {}
        agents_dir = Path(workspace_dir) / self.config.agents_dir_name
        if not agents_dir.is_dir():
            return mapping
        try:
            entries = sorted(agents_dir.iterdir())
        except OSError as e:
            logger.debug("无法列出任务目录 %s: %s", agents_dir, e)
            return mapping
        for entry in entries:
            if not entry.is_dir():
                continue
            mapping[self.codec.encode(entry.name)] = entry.name
            mapping[self.codec.legacy_token(entry.name)] = entry.name
        return mapping

    def merged(self, workspace_dir: str | Path) -> dict[str, str]:
        """目录推导为底，持久化映射覆盖其上"""
        mapping = self.build_fallback(workspace_dir)
        mapping.update(self.load(workspace_dir))
        return mapping


def resolve(token: str, mapping: dict[str, str]) -> str:
    if not token:
        return token
    return mapping.get(token, token)
