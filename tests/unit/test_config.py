"""
Unit tests for configuration and the command line.
"""

import pytest

from miniweb import ServerConfig
from miniweb.__main__ import build_parser, config_from_args


ENV_VARS = (
    "PORT", "HTTP_PORT", "HTTP_HOST", "HTTP_WORKERS", "HTTP_TIMEOUT",
    "HTTP_LOG_LEVEL", "HTTP_LOG_FILE", "HTTP_STATIC_DIR", "HTTP_VIEWS_DIR",
    "HTTP_DATA_DIR", "HTTP_CACHE_TTL", "HTTP_SESSION_TTL",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestServerConfig:
    """Tests for ServerConfig."""

    def test_defaults(self):
        config = ServerConfig()

        assert config.port == 3000
        assert config.api_prefix == "/api"
        assert config.cache_ttl == 300.0
        config.validate()

    def test_from_env_defaults(self, clean_env):
        config = ServerConfig.from_env()

        assert config.port == 3000
        assert config.host == "127.0.0.1"
        assert config.log_file is None

    def test_port_prefers_PORT(self, clean_env):
        clean_env.setenv("HTTP_PORT", "9000")
        assert ServerConfig.from_env().port == 9000

        clean_env.setenv("PORT", "8080")
        assert ServerConfig.from_env().port == 8080

    def test_from_env_values(self, clean_env):
        clean_env.setenv("HTTP_HOST", "0.0.0.0")
        clean_env.setenv("HTTP_WORKERS", "8")
        clean_env.setenv("HTTP_LOG_LEVEL", "debug")
        clean_env.setenv("HTTP_DATA_DIR", "/tmp/shop")
        clean_env.setenv("HTTP_CACHE_TTL", "60")
        clean_env.setenv("HTTP_SESSION_TTL", "120")

        config = ServerConfig.from_env()

        assert config.host == "0.0.0.0"
        assert config.max_workers == 8
        assert config.log_level == "DEBUG"
        assert config.data_dir == "/tmp/shop"
        assert config.cache_ttl == 60.0
        assert config.session_ttl == 120.0

    @pytest.mark.parametrize("changes", [
        {"port": -1},
        {"port": 65536},
        {"min_workers": 0},
        {"min_workers": 8, "max_workers": 4},
        {"buffer_size": 512},
        {"timeout": 0},
        {"cache_ttl": -1},
        {"session_ttl": 0},
        {"log_format": "xml"},
        {"api_prefix": "api"},
    ])
    def test_validate_rejects(self, changes):
        config = ServerConfig(**changes)
        with pytest.raises(ValueError):
            config.validate()

    def test_port_zero_allowed(self):
        ServerConfig(port=0).validate()


class TestCommandLine:
    """Tests for argument handling in __main__."""

    def test_flags_override_env(self, clean_env):
        clean_env.setenv("PORT", "8080")
        args = build_parser().parse_args(["--port", "9001", "--host", "0.0.0.0", "-l", "DEBUG"])

        config = config_from_args(args)

        assert config.port == 9001
        assert config.host == "0.0.0.0"
        assert config.log_level == "DEBUG"

    def test_default_log_file(self, clean_env):
        config = config_from_args(build_parser().parse_args([]))
        assert config.log_file == "logs/server.log"

    def test_workers_flag(self, clean_env):
        config = config_from_args(build_parser().parse_args(["-w", "2"]))

        assert config.max_workers == 2
        assert config.min_workers == 2
        config.validate()

    def test_directories(self, clean_env):
        args = build_parser().parse_args(["--static", "pub", "--views", "tpl", "--data-dir", "d"])
        config = config_from_args(args)

        assert (config.static_dir, config.views_dir, config.data_dir) == ("pub", "tpl", "d")
