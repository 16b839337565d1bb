import json
from pathlib import Path

import pytest

from paw_monitor.window_map import WindowNameMap, WindowMapError, resolve


def _agents(workspace: Path, *names: str):
    for name in names:
        (workspace / "agents" / name).mkdir(parents=True)


def test_load_missing_file_is_empty(tmp_path):
    assert WindowNameMap().load(tmp_path) == {}


def test_record_writes_pretty_json(tmp_path):
    wm = WindowNameMap()
    workspace = tmp_path / ".paw"
    token = wm.record(workspace, "implement-user-authentication-flow")

    assert token == "implementUserAuthent"
    raw = (workspace / "window-map.json").read_text(encoding="utf-8")
    assert raw.startswith("{\n  ")
    assert json.loads(raw) == {"implementUserAuthent": "implement-user-authentication-flow"}


def test_record_overwrites_same_token(tmp_path):
    wm = WindowNameMap()
    wm.record(tmp_path, "fix-bug")
    wm.record(tmp_path, "other-task")
    wm.record(tmp_path, "fix_bug")
    assert wm.load(tmp_path) == {"fixBug": "fix_bug", "otherTask": "other-task"}


def test_record_keeps_non_ascii(tmp_path):
    wm = WindowNameMap()
    wm.record(tmp_path, "修复-登录")
    raw = (tmp_path / "window-map.json").read_text(encoding="utf-8")
    assert "修复" in raw
    assert wm.load(tmp_path) == {"修复登录": "修复-登录"}


@pytest.mark.parametrize("content", ["{not json", "[1, 2]", '{"token": 3}', '"text"'])
def test_load_corrupt_file_raises(tmp_path, content):
    (tmp_path / "window-map.json").write_text(content, encoding="utf-8")
    with pytest.raises(WindowMapError):
        WindowNameMap().load(tmp_path)


def test_record_refuses_to_overwrite_corrupt_map(tmp_path):
    path = tmp_path / "window-map.json"
    path.write_text("{broken", encoding="utf-8")
    with pytest.raises(WindowMapError):
        WindowNameMap().record(tmp_path, "new-task")
    assert path.read_text(encoding="utf-8") == "{broken"


def test_build_fallback_registers_both_generations(tmp_path):
    _agents(tmp_path, "implement-user-authentication-flow", "short")
    (tmp_path / "agents" / "stray-file").write_text("x")

    mapping = WindowNameMap().build_fallback(tmp_path)
    assert mapping == {
        "implementUserAuthent": "implement-user-authentication-flow",
        "implement-user-authe": "implement-user-authentication-flow",
        "short": "short",
    }


def test_build_fallback_without_agents_dir(tmp_path):
    assert WindowNameMap().build_fallback(tmp_path) == {}


def test_persisted_map_wins_over_fallback(tmp_path):
    _agents(tmp_path, "fix-login-bug")
    (tmp_path / "window-map.json").write_text(
        json.dumps({"fixLoginBug": "fix_login_bug"}), encoding="utf-8"
    )
    mapping = WindowNameMap().merged(tmp_path)
    assert mapping["fixLoginBug"] == "fix_login_bug"
    assert mapping["fix-login-bug"] == "fix-login-bug"


def test_resolve():
    mapping = {"fixBug": "fix-bug"}
    assert resolve("fixBug", mapping) == "fix-bug"
    assert resolve("unknownToken", mapping) == "unknownToken"
    assert resolve("", mapping) == ""


def test_build_fallback_unreadable_agents_dir(tmp_path, monkeypatch):
    _agents(tmp_path, "fix-login-bug")
    real_iterdir = Path.iterdir

    def iterdir(self):
        if self.name == "agents":
            raise PermissionError(13, "Permission denied", str(self))
        return real_iterdir(self)

    monkeypatch.setattr(Path, "iterdir", iterdir)
    assert WindowNameMap().build_fallback(tmp_path) == {}
