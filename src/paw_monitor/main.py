import sys
import json
import signal
import socket
import logging
import argparse
import time
import dataclasses
from pathlib import Path

from .config import load_config, discovery_config
from .seatable_client import SeaTableClient
from .discovery import TaskDiscoveryService, DiscoveryCancelled, find_task_window
from .models import DiscoverySnapshot, WORKING, WAITING, DONE
from .window_map import WindowNameMap, WindowMapError
from .window_name import WindowCodec
from .collectors.tmux import TmuxClient, TmuxError

logger = logging.getLogger("paw-monitor")
_running = True


def _handle_signal(signum, frame):
    global _running
    _running = False
    logger.info("收到退出信号，正在停止...")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="paw-monitor", description="PAW 任务发现与状态监控")
    parser.add_argument("-v", "--verbose", action="store_true", help="输出 DEBUG 日志")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="轮询发现任务并同步到 SeaTable（默认）")

    p_once = sub.add_parser("once", help="执行一轮发现并打印结果")
    p_once.add_argument("--json", action="store_true", help="以 JSON 输出")

    p_map = sub.add_parser("window-map", help="打印窗口 token → 任务名映射")
    p_map.add_argument("workspace", help="工作区目录（通常是 <项目>/.paw）")

    p_mark = sub.add_parser("mark", help="修改任务窗口状态并记录映射")
    p_mark.add_argument("socket", help="tmux socket 名，如 paw-myproject")
    p_mark.add_argument("status", choices=[WORKING, WAITING, DONE])
    p_mark.add_argument("task_name")
    p_mark.add_argument("--window", help="窗口 id，如 @3；默认按任务名查找")
    p_mark.add_argument("--workspace", help="工作区目录，默认取会话路径下的 .paw")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )

    config = load_config()
    handlers = {
        None: cmd_run,
        "run": cmd_run,
        "once": cmd_once,
        "window-map": cmd_window_map,
        "mark": cmd_mark,
    }
    return handlers[args.command](config, args)


def cmd_run(config: dict, args) -> int:
    machine = config.get("monitor", {}).get("hostname") or socket.gethostname()
    poll_interval = config.get("monitor", {}).get("poll_interval", 30)
    seatable = config.get("seatable", {})
    if not seatable.get("server_url") or not seatable.get("api_token"):
        logger.error("缺少 [seatable] server_url / api_token 配置")
        return 1

    client = SeaTableClient(
        server_url=seatable["server_url"],
        api_token=seatable["api_token"],
        table_name=seatable.get("table_name", "任务看板"),
    )
    client.init()
    service = TaskDiscoveryService(discovery_config(config))
    logger.info("启动成功，机器=%s，间隔=%ds", machine, poll_interval)

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    while _running:
        try:
            client.publish(service.discover_all(), machine)
            client.refresh_auth_if_needed()
        except DiscoveryCancelled as e:
            logger.warning("本轮发现超时，跳过同步: %s", e)
        except Exception:
            logger.exception("本轮采集出错，将在下次重试")
        time.sleep(poll_interval)

    logger.info("监控已停止")
    return 0


def format_board(snapshot: DiscoverySnapshot) -> str:
    lines = []
    for title, tasks in (("Working", snapshot.working), ("Waiting", snapshot.waiting), ("Done", snapshot.done)):
        lines.append(f"== {title} ({len(tasks)})")
        for t in tasks:
            extra = " ".join(x for x in (t.duration, t.tokens) if x)
            line = f"  {t.name} [{t.session} {t.window_id}]"
            if t.current_action:
                line += f" {t.current_action}"
            if extra:
                line += f" ({extra})"
            lines.append(line)
    return "\n".join(lines)


def cmd_once(config: dict, args) -> int:
    service = TaskDiscoveryService(discovery_config(config))
    try:
        snapshot = service.discover_all()
    except DiscoveryCancelled as e:
        logger.error("发现超时: %s", e)
        return 1

    if args.json:
        data = {
            WORKING: [dataclasses.asdict(t) for t in snapshot.working],
            WAITING: [dataclasses.asdict(t) for t in snapshot.waiting],
            DONE: [dataclasses.asdict(t) for t in snapshot.done],
        }
        print(json.dumps(data, indent=2, ensure_ascii=False))
    else:
        print(format_board(snapshot))
    return 0


def cmd_window_map(config: dict, args) -> int:
    window_map = WindowNameMap(discovery_config(config))
    try:
        mapping = window_map.load(args.workspace)
    except WindowMapError as e:
        logger.error("读取窗口映射失败: %s", e)
        return 1

    if not mapping:
        print("No window mappings found")
        return 0
    for token in sorted(mapping):
        print(f"{token}\t{mapping[token]}")
    return 0


def cmd_mark(config: dict, args) -> int:
    dconf = discovery_config(config)
    codec = WindowCodec(dconf)
    client = TmuxClient(args.socket, timeout=dconf.command_timeout)
    session = args.socket.removeprefix(dconf.socket_prefix)

    try:
        target = args.window
        if not target:
            window = find_task_window(client, session, codec, args.task_name)
            if window is None:
                logger.error("会话 %s 中找不到任务窗口: %s", session, args.task_name)
                return 1
            target = window.id
        workspace = args.workspace or str(Path(client.session_path(session)) / dconf.workspace_dir_name)
        # 先写映射再改名，避免窗口已换 token 而映射缺失
        token = WindowNameMap(dconf, codec).record(workspace, args.task_name)
        client.rename_window(target, codec.window_name(args.status, args.task_name))
    except (TmuxError, WindowMapError) as e:
        logger.error("标记窗口失败: %s", e)
        return 1

    logger.info("窗口 %s → %s (%s)", target, token, args.status)
    return 0


if __name__ == "__main__":
    sys.exit(main())
