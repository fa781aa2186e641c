"""Tests for configuration loading."""

from waystage.config import load_config
from waystage.persistence import SQLiteInstanceRepository, get_repository
from waystage.transports import get_transport
from waystage.transports.inmemory import InMemoryTransport
from waystage.transports.redis import RedisTransport


def test_defaults_without_config_file():
    config = load_config()
    assert config.transport.backend == "inmemory"
    assert config.transport.signal_topic == "signals"
    assert config.scheduler.poll_interval == 50.0
    assert config.scheduler.wake_on_signal is False
    assert config.database_url is None
    assert isinstance(get_transport(config=config), InMemoryTransport)


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
transport:
  backend: redis
  signal_topic: approvals
  redis:
    host: testhost
    port: 1234
scheduler:
  poll_interval: 5
  wake_on_signal: true
log_level: DEBUG
"""
    )
    monkeypatch.setenv("WAYSTAGE_CONFIG", str(config_path))

    config = load_config()
    assert config.transport.backend == "redis"
    assert config.transport.signal_topic == "approvals"
    assert config.transport.redis.host == "testhost"
    assert config.transport.redis.port == 1234
    assert config.scheduler.poll_interval == 5.0
    assert config.scheduler.wake_on_signal is True
    assert config.log_level == "DEBUG"


def test_get_transport_uses_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
transport:
  backend: redis
  redis:
    host: confighost
    port: 6380
"""
    )
    monkeypatch.setenv("WAYSTAGE_CONFIG", str(config_path))

    transport = get_transport()
    assert isinstance(transport, RedisTransport)
    assert transport.host == "confighost"
    assert transport.port == 6380

    # the environment overrides the configured backend
    monkeypatch.setenv("WAYSTAGE_TRANSPORT", "inmemory")
    assert isinstance(get_transport(), InMemoryTransport)


def test_database_url_from_environment(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("database_url: sqlite:///ignored.db\n")
    monkeypatch.setenv("WAYSTAGE_CONFIG", str(config_path))
    db_path = tmp_path / "env.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite://{db_path}")

    config = load_config()
    assert config.database_url == f"sqlite://{db_path}"

    repo = get_repository(config=config)
    assert isinstance(repo, SQLiteInstanceRepository)
    assert repo.db_path == str(db_path)
