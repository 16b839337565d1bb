"""窗口名编解码：任务名 <-> tmux 窗口 token，以及状态 emoji 前缀。

窗口名 = 状态 emoji + token。token 经历过三代格式，旧版本创建的窗口会一直
留在 tmux server 里，因此匹配时三种编码都要认。
"""
import hashlib
from typing import Callable

from .config import DiscoveryConfig
from .models import WORKING, WAITING, DONE, WARNING

EMOJI_WORKING = "🤖"
EMOJI_WAITING = "💬"
EMOJI_DONE = "✅"
EMOJI_WARNING = "⚠️"
EMOJI_NEW = "⭐️"  # 新会话窗口，不是任务窗口

# 按顺序匹配，第一个命中的前缀生效
STATUS_PREFIXES: tuple[tuple[str, str], ...] = (
    (EMOJI_WORKING, WORKING),
    (EMOJI_WAITING, WAITING),
    (EMOJI_DONE, DONE),
    (EMOJI_WARNING, WARNING),
)


def to_camel_case(name: str) -> str:
    """kebab-case / snake_case 转 camelCase，如 cancel-task-twice → cancelTaskTwice"""
    out = []
    capitalize_next = False
    for ch in name:
        if ch in "-_":
            # 只有已写出字符后才大写下一个，首尾/连续分隔符直接吞掉
            if out:
                capitalize_next = True
            continue
        if capitalize_next:
            upper = ch.upper()
            # ß 之类的全量大小写映射会变长，保持原字符
            out.append(upper if len(upper) == 1 else ch)
            capitalize_next = False
        else:
            out.append(ch)
    return "".join(out)


def short_task_id(name: str, length: int = 4) -> str:
    return hashlib.sha1(name.encode("utf-8")).hexdigest()[:length]


def fold_status(status: str) -> str:
    """WARNING 展示时并入 WAITING"""
    return WAITING if status == WARNING else status


def classify_prefix(window_name: str) -> tuple[str, str | None, bool]:
    """拆出 (token, status, found)；非任务窗口返回 ("", None, False)"""
    for emoji, status in STATUS_PREFIXES:
        if window_name.startswith(emoji):
            return window_name[len(emoji):], status, True
    return "", None, False


class WindowCodec:
    def __init__(self, config: DiscoveryConfig | None = None):
        self.config = config or DiscoveryConfig()
        self.max_len = self.config.max_window_token_len
        # 新格式只能追加到末尾，不改已有策略
        self.strategies: tuple[Callable[[str], str], ...] = (
            self.encode,
            self.legacy_token,
            self.hash_token,
        )

    def encode(self, name: str) -> str:
        """当前格式：camelCase 后硬截断，不加省略号"""
        return to_camel_case(name)[:self.max_len]

    def legacy_token(self, name: str) -> str:
        """上一代格式：原名直接截断"""
        return name[:self.max_len]

    def hash_token(self, name: str) -> str:
        """最早格式：camelCase 截断 + "~" + sha1 前 4 位"""
        suffix = self.config.token_sep + short_task_id(name, self.config.token_id_len)
        max_base = max(self.max_len - len(suffix), 1)
        return to_camel_case(name)[:max_base] + suffix

    def matches(self, token: str, name: str) -> bool:
        return any(token == strategy(name) for strategy in self.strategies)

    def decode(self, window_name: str) -> tuple[str, bool]:
        token, _, found = classify_prefix(window_name)
        return token, found

    def window_name(self, status: str, task_name: str) -> str:
        """生成新窗口名；WARNING 只读不写"""
        for emoji, prefix_status in STATUS_PREFIXES:
            if prefix_status == status and status != WARNING:
                return emoji + self.encode(task_name)
        raise ValueError(f"不能用于新窗口的状态: {status!r}")
