"""从 agent pane 的 scrollback 文本里提取预览、当前动作、耗时和 token 用量。

全部是纯字符串函数，不抛异常；匹配不到就返回空串。
"""
from dataclasses import dataclass

SPINNER = "⏺"
FIELD_SEP = "·"
INTERRUPT_HINTS = ("ctrl+c to interrupt", "esc to interrupt")
THOUGHT_FOR = "thought for"
PREVIEW_LINES = 3
ACTION_MAX_LEN = 60


@dataclass(frozen=True)
class PaneSnapshot:
    preview: str
    current_action: str
    duration: str
    tokens: str


def trim_preview(text: str) -> str:
    """保留最后 3 个非空行"""
    lines = [l.strip() for l in text.strip().split("\n")]
    non_empty = [l for l in lines if l]
    return "\n".join(non_empty[-PREVIEW_LINES:])


def extract_current_action(text: str) -> str:
    """取最后一个含 ⏺ 的行，返回 ⏺ 之后的内容"""
    last_spinner_line = ""
    for line in text.split("\n"):
        stripped = line.strip()
        if SPINNER in stripped:
            last_spinner_line = stripped
    if not last_spinner_line:
        return ""

    idx = last_spinner_line.index(SPINNER)
    action = last_spinner_line[idx + len(SPINNER):].strip()
    if len(action) > ACTION_MAX_LEN:
        action = action[:ACTION_MAX_LEN - 3] + "..."
    return action


def _has_interrupt_hint(s: str) -> bool:
    return any(hint in s for hint in INTERRUPT_HINTS)


def _is_duration(s: str) -> bool:
    """形如 54s、1m 36s、2h 5m"""
    return any(c.isdigit() for c in s) and any(c in "smh" for c in s)


def extract_duration_and_tokens(text: str) -> tuple[str, str]:
    """解析状态行括号里的元数据，例如：
    ✻ Whirring… (ctrl+c to interrupt · 54s · ↓ 2.7k tokens) → ("54s", "↓ 2.7k")
    """
    status_line = ""
    for line in text.split("\n"):
        stripped = line.strip()
        if _has_interrupt_hint(stripped) and FIELD_SEP in stripped:
            status_line = stripped
    if not status_line:
        return "", ""

    start = status_line.find("(")
    end = status_line.rfind(")")
    if start == -1 or end == -1 or start >= end:
        return "", ""

    duration = tokens = ""
    for part in status_line[start + 1:end].split(FIELD_SEP):
        part = part.strip()
        if "tokens" in part:
            tokens = part.removesuffix(" tokens").strip()
            continue
        if _has_interrupt_hint(part) or THOUGHT_FOR in part:
            continue
        if _is_duration(part):
            duration = part
    return duration, tokens


def scrape(text: str) -> PaneSnapshot:
    duration, tokens = extract_duration_and_tokens(text)
    return PaneSnapshot(
        preview=trim_preview(text),
        current_action=extract_current_action(text),
        duration=duration,
        tokens=tokens,
    )
