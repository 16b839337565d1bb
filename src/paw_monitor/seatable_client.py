import time
import logging
from datetime import datetime
from seatable_api import Base
from seatable_api.constants import ColumnTypes
from .models import DiscoveredTask, DiscoverySnapshot, STATUS_MAP

logger = logging.getLogger(__name__)

# 列配置（首列"任务名"由建表时自动创建）
COLUMNS = [
    ("状态", ColumnTypes.SINGLE_SELECT),
    ("会话", ColumnTypes.TEXT),
    ("窗口ID", ColumnTypes.TEXT),
    ("当前动作", ColumnTypes.TEXT),
    ("耗时", ColumnTypes.TEXT),
    ("Token", ColumnTypes.TEXT),
    ("预览", ColumnTypes.LONG_TEXT),
    ("更新时间", ColumnTypes.DATE),
    ("机器", ColumnTypes.TEXT),
]

STATUS_OPTIONS = [
    {"name": "进行中", "color": "#59CB74", "textColor": "#FFFFFF"},
    {"name": "待确认", "color": "#FF8000", "textColor": "#FFFFFF"},
    {"name": "已完成", "color": "#9860E5", "textColor": "#FFFFFF"},
]


def _esc(s: str) -> str:
    """转义 SQL 单引号"""
    return s.replace("'", "''")


class SeaTableClient:
    """把发现结果同步到 SeaTable 看板，一行对应一个任务窗口"""

    def __init__(self, server_url: str, api_token: str, table_name: str):
        self.server_url = server_url
        self.api_token = api_token
        self.table_name = table_name
        self.base = None
        self._auth_time = 0

    def init(self):
        """认证 + 确保表/列/选项存在"""
        self.base = Base(self.api_token, self.server_url)
        self.base.auth()
        self._auth_time = time.time()
        self._ensure_table()
        self._ensure_columns()
        self._ensure_options()
        logger.info("SeaTable 初始化完成：表=%s", self.table_name)

    def _ensure_table(self):
        metadata = self.base.get_metadata()
        if not any(t["name"] == self.table_name for t in metadata["tables"]):
            self.base.add_table(self.table_name)
            logger.info("已创建表：%s", self.table_name)

    def _ensure_columns(self):
        metadata = self.base.get_metadata()
        existing_cols = {
            c["name"]
            for t in metadata["tables"]
            if t["name"] == self.table_name
            for c in t.get("columns", [])
        }
        for col_name, col_type in COLUMNS:
            if col_name in existing_cols:
                continue
            self.base.insert_column(self.table_name, col_name, col_type)
            logger.info("已添加列：%s (%s)", col_name, col_type)

    def _ensure_options(self):
        try:
            self.base.add_column_options(self.table_name, "状态", STATUS_OPTIONS)
        except Exception as e:
            # 选项已存在时 SeaTable 会报错
            logger.debug("添加状态选项失败（可能已存在）: %s", e)

    def _row_data(self, task: DiscoveredTask, machine: str) -> dict:
        return {
            "任务名": task.name,
            "状态": STATUS_MAP.get(task.status, "待确认"),
            "会话": task.session,
            "窗口ID": task.window_id,
            "当前动作": task.current_action,
            "耗时": task.duration,
            "Token": task.tokens,
            "预览": task.preview,
            "更新时间": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "机器": machine,
        }

    def upsert_task(self, task: DiscoveredTask, machine: str):
        """按 (会话, 窗口ID, 机器) 去重 upsert"""
        sql = (
            f"SELECT _id FROM `{self.table_name}` "
            f"WHERE `会话`='{_esc(task.session)}' "
            f"AND `窗口ID`='{_esc(task.window_id)}' "
            f"AND `机器`='{_esc(machine)}' LIMIT 1"
        )
        rows = self.base.query(sql)
        row_data = self._row_data(task, machine)
        if rows:
            self.base.update_row(self.table_name, rows[0]["_id"], row_data)
        else:
            self.base.append_row(self.table_name, row_data)

    def remove_stale_tasks(self, machine: str, active_keys: set[tuple[str, str]]):
        """删除该机器上已不存在的任务窗口行"""
        sql = (
            f"SELECT _id, `会话`, `窗口ID` FROM `{self.table_name}` "
            f"WHERE `机器`='{_esc(machine)}'"
        )
        for row in self.base.query(sql):
            if (row.get("会话"), row.get("窗口ID")) not in active_keys:
                self.base.delete_row(self.table_name, row["_id"])

    def publish(self, snapshot: DiscoverySnapshot, machine: str):
        tasks = snapshot.all()
        for task in tasks:
            self.upsert_task(task, machine)
        self.remove_stale_tasks(machine, {t.key for t in tasks})
        logger.info("已同步 %d 个任务：%s", len(tasks), snapshot.counts())

    def refresh_auth_if_needed(self):
        """base_token 有效期 3 天，超 2 天自动刷新"""
        if time.time() - self._auth_time > 2 * 86400:
            self.base.auth()
            self._auth_time = time.time()
            logger.info("SeaTable token 已刷新")
