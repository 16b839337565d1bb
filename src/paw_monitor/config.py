import os
import tomllib
from dataclasses import dataclass, fields
from pathlib import Path


@dataclass(frozen=True)
class DiscoveryConfig:
    """发现引擎的不可变配置，构造时注入各组件"""
    socket_prefix: str = "paw-"
    socket_dir: str = ""             # 为空时按 $TMUX_TMPDIR/tmux-<uid> 推导
    workspace_dir_name: str = ".paw"
    agents_dir_name: str = "agents"
    window_map_file: str = "window-map.json"
    max_window_token_len: int = 20
    token_sep: str = "~"             # 最早一代 token 的 hash 分隔符
    token_id_len: int = 4
    capture_lines: int = 50
    max_workers: int = 8
    command_timeout: float = 10.0    # 单条 tmux 命令超时（秒）
    pass_timeout: float = 0.0        # 整轮发现的截止时间，0 表示不限

    def resolve_socket_dir(self) -> Path:
        if self.socket_dir:
            return Path(self.socket_dir).expanduser()
        tmpdir = os.environ.get("TMUX_TMPDIR") or "/tmp"
        return Path(tmpdir) / f"tmux-{os.getuid()}"


def load_config() -> dict:
    """加载配置，优先级：环境变量 > config.toml > 默认值"""
    config_path = os.environ.get("PAW_MONITOR_CONFIG")
    if not config_path:
        local = Path("config.toml")
        if local.exists():
            config_path = str(local)
        else:
            config_path = str(Path.home() / ".config" / "paw-monitor" / "config.toml")

    config: dict = {}
    if Path(config_path).exists():
        with open(config_path, "rb") as f:
            config = tomllib.load(f)

    # 环境变量覆盖 token
    env_token = os.environ.get("SEATABLE_API_TOKEN")
    if env_token:
        config.setdefault("seatable", {})["api_token"] = env_token

    return config


def discovery_config(config: dict) -> DiscoveryConfig:
    """从 [discovery] 段构造 DiscoveryConfig，未知键忽略"""
    section = config.get("discovery", {})
    known = {f.name for f in fields(DiscoveryConfig)}
    kwargs = {}
    for key, value in section.items():
        if key not in known:
            continue
        default = getattr(DiscoveryConfig, key)
        kwargs[key] = type(default)(value)
    return DiscoveryConfig(**kwargs)
