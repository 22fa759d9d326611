"""
tests/ — Config and session singleton coverage for obs-session.
Run with: pytest tests/ -v
"""

import pytest

from obs_session.config import Settings
from obs_session.core import OBSSession, get_obs_session, init_obs_session, reset_obs_session


# ─── Config ───────────────────────────────────────────────────────────────────

def test_settings_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    s = Settings()
    assert s.obs.port == 4455
    assert s.obs.host == "localhost"
    assert s.obs.scene_name == "Scene"
    assert s.api.port == 8080


def test_settings_yaml_load(tmp_path):
    config = tmp_path / "config.yaml"
    config.write_text(
        "obs:\n  host: 192.168.1.100\n  port: 4455\n  password: secret\n  scene_name: Main\n"
        "api:\n  port: 9090\n"
    )
    s = Settings.load(config)
    assert s.obs.host == "192.168.1.100"
    assert s.obs.password == "secret"
    assert s.obs.scene_name == "Main"
    assert s.api.port == 9090


def test_settings_env(tmp_path, monkeypatch):
    monkeypatch.setenv("OBS_SCENE_NAME", "FromEnv")
    monkeypatch.setenv("OBS_PORT", "4460")
    s = Settings.load(tmp_path / "missing.yaml")
    assert s.obs.scene_name == "FromEnv"
    assert s.obs.port == 4460


def test_settings_yaml_roundtrip(tmp_path):
    config = tmp_path / "config.yaml"
    config.write_text("obs:\n  scene_name: Stage\n")
    out = tmp_path / "out.yaml"
    Settings.load(config).to_yaml(out)
    assert Settings.load(out).obs.scene_name == "Stage"


# ─── Session singleton ────────────────────────────────────────────────────────

def test_get_before_init_raises():
    reset_obs_session()
    with pytest.raises(RuntimeError, match="not initialized"):
        get_obs_session()


def test_init_and_get():
    session = init_obs_session("obs.local", 4455, "pw", scene_name="Main")
    assert isinstance(session, OBSSession)
    assert get_obs_session() is session
    assert session.scene_name == "Main"
    reset_obs_session()
