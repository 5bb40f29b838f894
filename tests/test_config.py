from __future__ import annotations

import pytest
import yaml
from typer.testing import CliRunner

from hostpulse import cli
from hostpulse.config import Settings
from hostpulse.edge.config import AgentConfig
from hostpulse.edge.errors import ConfigError
from hostpulse.utils.net import mask_token, normalize_url

runner = CliRunner()


@pytest.fixture(autouse=True)
def no_home_config(tmp_path, monkeypatch):
    monkeypatch.setattr(cli, "DEFAULT_CONFIG_PATH", tmp_path / "missing.yaml")


# ── AgentConfig ─────────────────────────────────────────


def test_defaults():
    config = AgentConfig()
    assert config.interval == 60
    assert config.timeout == 10
    assert config.devices == ()
    assert config.proxy_url is None


def test_server_url_trailing_slash_stripped():
    assert AgentConfig(server_url="https://monitor.example.com/").server_url == "https://monitor.example.com"
    assert normalize_url("https://a/b//") == "https://a/b/"
    assert normalize_url("https://a") == "https://a"


@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({"server_url": "http://x"}, "token"),
        ({"token": "tok"}, "server URL"),
        ({"server_url": "http://x", "token": "tok", "interval": 0}, "interval"),
        ({"server_url": "http://x", "token": "tok", "timeout": -1}, "timeout"),
    ],
)
def test_validate_rejects_incomplete_config(kwargs, message):
    with pytest.raises(ConfigError, match=message):
        AgentConfig(**kwargs).validate()


def test_validate_returns_config():
    config = AgentConfig(server_url="http://x", token="tok")
    assert config.validate() is config


def test_from_yaml(tmp_path):
    path = tmp_path / "agent.yaml"
    path.write_text(yaml.safe_dump({
        "server": "https://monitor.example.com/",
        "token": "abc",
        "interval": 30,
        "devices": ["/dev/sda1", "/"],
        "interfaces": ["eth0"],
        "proxy": "http://proxy:3128",
    }))

    config = AgentConfig.from_yaml(str(path))

    assert config.server_url == "https://monitor.example.com"
    assert config.token == "abc"
    assert config.interval == 30
    assert config.devices == ("/dev/sda1", "/")
    assert config.interfaces == ("eth0",)
    assert config.proxy_url == "http://proxy:3128"


def test_to_yaml_writes_file_keys(tmp_path):
    path = tmp_path / "nested" / "agent.yaml"
    AgentConfig(server_url="http://x", token="tok", devices=["/"]).to_yaml(str(path))

    data = yaml.safe_load(path.read_text())
    assert data["server"] == "http://x"
    assert data["devices"] == ["/"]
    assert "server_url" not in data


def test_from_yaml_rejects_non_mapping(tmp_path):
    path = tmp_path / "agent.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError):
        AgentConfig.from_yaml(str(path))


def test_from_yaml_converts_numeric_strings(tmp_path):
    path = tmp_path / "agent.yaml"
    path.write_text(yaml.safe_dump({"interval": "30", "timeout": "5"}))

    config = AgentConfig.from_yaml(str(path))

    assert config.interval == 30
    assert config.timeout == 5


def test_from_yaml_rejects_non_numeric_interval(tmp_path):
    path = tmp_path / "agent.yaml"
    path.write_text(yaml.safe_dump({"interval": "often"}))
    with pytest.raises(ConfigError, match="interval"):
        AgentConfig.from_yaml(str(path))


def test_merge_takes_only_named_fields():
    base = AgentConfig(interval=30, log_level="DEBUG", token="file-token")
    other = AgentConfig(interval=60, log_level="INFO")

    merged = base.merge(other, {"interval"})

    assert merged.interval == 60
    assert merged.log_level == "DEBUG"
    assert merged.token == "file-token"


def test_settings_fields_lists_only_environment_values(monkeypatch):
    monkeypatch.setenv("HOSTPULSE_INTERVAL", "60")
    monkeypatch.setenv("HOSTPULSE_PROXY", "http://proxy:3128")

    assert AgentConfig.settings_fields(Settings()) == {"interval", "proxy_url"}


def test_from_settings_reads_environment(monkeypatch):
    monkeypatch.setenv("HOSTPULSE_SERVER", "https://env.example.com/")
    monkeypatch.setenv("HOSTPULSE_TOKEN", "env-token")
    monkeypatch.setenv("HOSTPULSE_INTERVAL", "15")
    monkeypatch.setenv("HOSTPULSE_DEVICES", "/dev/sda1, /home")

    config = AgentConfig.from_settings(Settings())

    assert config.server_url == "https://env.example.com"
    assert config.token == "env-token"
    assert config.interval == 15
    assert config.devices == ("/dev/sda1", "/home")
    assert config.interfaces == ()


def test_config_is_immutable():
    config = AgentConfig()
    with pytest.raises(AttributeError):
        config.token = "x"


def test_mask_token():
    assert mask_token("abcdefghijkl") == "abcd...ijkl"
    assert mask_token("short") == "short"


# ── CLI ─────────────────────────────────────────────────


def test_load_config_precedence(tmp_path, monkeypatch):
    path = tmp_path / "agent.yaml"
    path.write_text(yaml.safe_dump({"server": "http://file", "token": "file-token", "interval": 30}))
    monkeypatch.setenv("HOSTPULSE_TOKEN", "env-token")

    config = cli.load_config(path, interval=5)

    assert config.server_url == "http://file"
    assert config.token == "env-token"
    assert config.interval == 5


def test_environment_beats_file_even_at_default_values(tmp_path, monkeypatch):
    path = tmp_path / "agent.yaml"
    path.write_text(yaml.safe_dump({"interval": 30, "log_level": "DEBUG"}))
    monkeypatch.setenv("HOSTPULSE_INTERVAL", "60")
    monkeypatch.setenv("HOSTPULSE_LOG_LEVEL", "INFO")

    config = cli.load_config(path)

    assert config.interval == 60
    assert config.log_level == "INFO"


def test_unset_environment_keeps_file_values(tmp_path):
    path = tmp_path / "agent.yaml"
    path.write_text(yaml.safe_dump({"interval": 30, "log_level": "DEBUG"}))

    config = cli.load_config(path)

    assert config.interval == 30
    assert config.log_level == "DEBUG"


def test_start_with_malformed_config_file_exits(tmp_path, monkeypatch):
    started = []
    monkeypatch.setattr(cli, "run_agent", started.append)
    path = tmp_path / "agent.yaml"
    path.write_text(yaml.safe_dump({"server": "http://file", "token": "tok", "interval": "soon"}))

    result = runner.invoke(cli.app, ["start", "--config", str(path)])

    assert result.exit_code == 1
    assert "interval must be an integer" in result.output
    assert started == []


def test_load_config_missing_explicit_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        cli.load_config(tmp_path / "nope.yaml")


def test_start_without_token_exits(monkeypatch):
    started = []
    monkeypatch.setattr(cli, "run_agent", started.append)

    result = runner.invoke(cli.app, ["start", "--server", "http://collector"])

    assert result.exit_code == 1
    assert "token" in result.output
    assert started == []


def test_start_runs_agent_with_merged_config(monkeypatch):
    started = []
    monkeypatch.setattr(cli, "run_agent", started.append)

    result = runner.invoke(cli.app, [
        "start",
        "--server", "http://collector/",
        "--token", "secret-token-value",
        "--interval", "20",
        "--device", "/",
        "--device", "/data",
        "--interface", "eth0",
    ])

    assert result.exit_code == 0, result.output
    (config,) = started
    assert config.server_url == "http://collector"
    assert config.interval == 20
    assert config.devices == ("/", "/data")
    assert config.interfaces == ("eth0",)


def test_config_command_saves_file_and_masks_token(tmp_path):
    path = tmp_path / "agent.yaml"

    result = runner.invoke(cli.app, [
        "config",
        "--config", str(path),
        "--server", "http://collector",
        "--token", "secret-token-value",
    ])

    assert result.exit_code == 0, result.output
    assert "secr...alue" in result.output
    assert "secret-token-value" not in result.output
    data = yaml.safe_load(path.read_text())
    assert data["token"] == "secret-token-value"
    assert data["server"] == "http://collector"


def test_version_command():
    result = runner.invoke(cli.app, ["version"])
    assert result.exit_code == 0
    assert "hostpulse agent" in result.output
