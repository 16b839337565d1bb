from dataclasses import dataclass, field


WORKING = "working"
WAITING = "waiting"
DONE = "done"
WARNING = "warning"  # 旧版窗口遗留状态，仅用于解码，展示时并入 WAITING

STATUS_MAP = {
    WORKING: "进行中",
    WAITING: "待确认",
    DONE: "已完成",
    WARNING: "待确认",
}


@dataclass(frozen=True)
class DiscoveredTask:
    name: str                 # 完整任务名（无法解析时为窗口 token）
    session: str              # tmux 会话名（项目名）
    status: str               # working / waiting / done / warning
    window_id: str            # tmux window id，如 "@3"
    preview: str = ""         # agent pane 最后 3 行
    current_action: str = ""  # ⏺ 行上的当前动作
    duration: str = ""        # 如 "1m 36s"
    tokens: str = ""          # 如 "↓ 5.9k"
    observed_order: int = 0   # 本轮发现顺序，近似创建顺序

    @property
    def key(self) -> tuple[str, str]:
        """跨轮次识别同一任务"""
        return (self.session, self.window_id)


@dataclass(frozen=True)
class DiscoverySnapshot:
    working: list[DiscoveredTask] = field(default_factory=list)
    waiting: list[DiscoveredTask] = field(default_factory=list)
    done: list[DiscoveredTask] = field(default_factory=list)

    def all(self) -> list[DiscoveredTask]:
        return sorted(self.working + self.waiting + self.done, key=lambda t: t.observed_order)

    def counts(self) -> dict[str, int]:
        return {WORKING: len(self.working), WAITING: len(self.waiting), DONE: len(self.done)}
