"""
tests/test_cli.py — typer CLI commands that need no live OBS.
"""

from typer.testing import CliRunner

from obs_session.config import Settings
from obs_session.main import app

runner = CliRunner()


def test_init_config_writes_yaml(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("OBS_SCENE_NAME", "Stage")
    out = tmp_path / "config.yaml"

    result = runner.invoke(app, ["init-config", "--output", str(out)])

    assert result.exit_code == 0
    assert Settings.load(out).obs.scene_name == "Stage"


def test_check_fails_cleanly_without_obs(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("OBS_HOST", "127.0.0.1")
    monkeypatch.setenv("OBS_PORT", "1")

    result = runner.invoke(app, ["check"])

    assert result.exit_code == 1
