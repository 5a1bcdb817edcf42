"""Tests for PluginManager — registration and local discovery."""

from __future__ import annotations

import sys
from pathlib import Path

import pluggy

from editionctl.plugins.manager import PluginManager

hookimpl = pluggy.HookimplMarker("editionctl")

_VALID_PLUGIN_SRC = """\
import pluggy

hookimpl = pluggy.HookimplMarker("editionctl")

calls: list[dict] = []


class InitCapturePlugin:
    \"\"\"Captures post_init calls for verification.\"\"\"

    @hookimpl
    def post_init(self, ledger_name: str, base_url: str) -> None:
        calls.append({"ledger_name": ledger_name, "base_url": base_url})


class PlainHelper:
    def hello(self) -> str:
        return "world"
"""

_SYNTAX_ERROR_SRC = """\
def broken(
"""


class _DummyPlugin:
    @hookimpl
    def post_check(self, issues_found: int, errors: int, editions_checked: int) -> None:
        pass


class _ClassPlugin:
    """Registered as a class, the way an entry point may name one."""

    seen: list[str] = []

    @hookimpl
    def post_init(self, ledger_name: str, base_url: str) -> None:
        type(self).seen.append(ledger_name)


class TestRegistration:
    def test_hook_relay_exposes_lifecycle_hooks(self) -> None:
        pm = PluginManager()
        for name in (
            "post_reconcile",
            "post_certificate_issued",
            "post_transfer",
            "post_check",
            "post_init",
        ):
            assert hasattr(pm.hook, name)

    def test_register_and_unregister(self) -> None:
        pm = PluginManager()
        plugin = _DummyPlugin()
        pm.register_plugin(plugin, name="dummy")
        assert "dummy" in pm.list_plugin_names()
        pm.unregister(plugin)
        assert "dummy" not in pm.list_plugin_names()

    def test_default_name(self) -> None:
        pm = PluginManager()
        pm.register_plugin(_DummyPlugin())
        assert "_DummyPlugin" in pm.list_plugin_names()

    def test_is_loaded(self) -> None:
        pm = PluginManager()
        assert pm.is_loaded is False
        pm.discover_and_load()
        assert pm.is_loaded is True

    def test_entry_point_classes_are_instantiated(self) -> None:
        pm = PluginManager()
        pm._pm.register(_ClassPlugin, name="ep_plugin")
        pm._instantiate_entry_point_classes()

        (plugin,) = pm._pm.get_plugins()
        assert isinstance(plugin, _ClassPlugin)
        pm.hook.post_init(ledger_name="ledger", base_url="http://x")
        assert _ClassPlugin.seen[-1] == "ledger"


class TestLocalDiscovery:
    def test_discovers_and_fires_local_plugin(self, tmp_path: Path) -> None:
        (tmp_path / "capture.py").write_text(_VALID_PLUGIN_SRC, encoding="utf-8")
        pm = PluginManager()
        pm._discover_local(tmp_path)

        assert pm.list_plugin_names() == ["editionctl_local_plugin_capture.InitCapturePlugin"]
        pm.hook.post_init(ledger_name="prints", base_url="http://x")
        module = sys.modules["editionctl_local_plugin_capture"]
        assert module.calls == [{"ledger_name": "prints", "base_url": "http://x"}]

    def test_skips_broken_and_private_files(self, tmp_path: Path) -> None:
        (tmp_path / "broken.py").write_text(_SYNTAX_ERROR_SRC, encoding="utf-8")
        (tmp_path / "_private.py").write_text(_VALID_PLUGIN_SRC, encoding="utf-8")
        pm = PluginManager()
        pm._discover_local(tmp_path)
        assert pm.list_plugin_names() == []
        assert "editionctl_local_plugin_broken" not in sys.modules

    def test_missing_directory_is_noop(self, tmp_path: Path) -> None:
        pm = PluginManager()
        assert pm.discover_and_load(local_dir=tmp_path / "nope") == pm.list_plugin_names()
