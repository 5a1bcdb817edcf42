"""Tests for EditionSettings — TOML, env, and CLI flag precedence."""

from __future__ import annotations

from pathlib import Path

import click
import pytest
from pydantic import ValidationError

from editionctl.config.discovery import CONFIG_FILENAME
from editionctl.config.settings import EditionSettings


def write_config(root: Path, text: str) -> Path:
    path = root / CONFIG_FILENAME
    path.write_text(text, encoding="utf-8")
    return path


class TestFromCli:
    def test_defaults(self, tmp_path: Path) -> None:
        settings = EditionSettings.from_cli(ledger_root=tmp_path)
        assert settings.ledger_root == tmp_path
        assert settings.config_path is None
        assert settings.plugins.enabled is True
        assert "paid" in settings.classification.active_financial_states

    def test_root_is_config_parent(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        write_config(tmp_path, '[ledger]\nname = "prints"\n')
        nested = tmp_path / "sub"
        nested.mkdir()
        monkeypatch.chdir(nested)
        settings = EditionSettings.from_cli()
        assert settings.ledger_root == tmp_path.resolve()
        assert settings.ledger.name == "prints"

    def test_explicit_config_path(self, tmp_path: Path) -> None:
        path = write_config(tmp_path, '[certificates]\nbase_url = "https://x.test"\n')
        settings = EditionSettings.from_cli(config_path=str(path))
        assert settings.certificates.base_url == "https://x.test"
        assert settings.ledger_root == tmp_path

    def test_cli_flags(self, tmp_path: Path) -> None:
        settings = EditionSettings.from_cli(ledger_root=tmp_path, json_output=True, sync=True)
        assert settings.json_output
        assert settings.sync

    def test_env_overrides_toml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        write_config(tmp_path, "[reconcile]\nmax_attempts = 3\n")
        monkeypatch.setenv("EDITIONCTL_RECONCILE__MAX_ATTEMPTS", "5")
        settings = EditionSettings.from_cli(ledger_root=tmp_path)
        assert settings.reconcile.max_attempts == 5

    def test_invalid_toml(self, tmp_path: Path) -> None:
        path = write_config(tmp_path, "[ledger\n")
        with pytest.raises(click.ClickException, match="Invalid TOML"):
            EditionSettings.from_cli(config_path=str(path))

    def test_frozen(self, tmp_path: Path) -> None:
        settings = EditionSettings.from_cli(ledger_root=tmp_path)
        with pytest.raises(ValidationError):
            settings.quiet = True  # type: ignore[misc]
