import json

from tasktrack.config import ConfigChannel, Settings, load_config
from tasktrack.transport.http import DEFAULT_BASE_URL


def test_defaults_when_nothing_configured(tmp_path):
    settings = Settings.load(tmp_path / "missing.json", environ={})
    assert settings.base_url == DEFAULT_BASE_URL
    assert settings.stale_time == 300
    assert settings.gc_time == 600
    assert settings.gate.login_path == "/login"


def test_file_then_environment(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"base_url": "https://file.test", "anon_key": "file-key", "credential": "x"}))

    settings = Settings.load(path, environ={})
    assert settings.base_url == "https://file.test"
    assert settings.anon_key == "file-key"

    settings = Settings.load(path, environ={"TASKTRACK_URL": "https://env.test", "TASKTRACK_STALE_TIME": "30"})
    assert settings.base_url == "https://env.test"
    assert settings.anon_key == "file-key"
    assert settings.stale_time == 30.0


def test_corrupt_config_reads_as_empty(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    assert load_config(path) == {}


def test_config_channel_keeps_other_settings(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"base_url": "https://file.test"}))
    channel = ConfigChannel(path)

    assert channel.read() is None
    channel.write("abc")
    assert channel.read() == "abc"
    channel.write(None)
    assert channel.read() is None
    assert json.loads(path.read_text()) == {"base_url": "https://file.test"}
