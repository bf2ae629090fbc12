"""Tests for configuration loading."""

import pytest

from cloudvars.config import CLOUD_PREFIX, CloudConfig, load_config
from cloudvars.exceptions import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep CLOUDVARS_* variables from the outer environment out of tests."""
    for key in ("HOST", "SECURE", "SPECIAL", "USER", "PROJECT_ID", "STORE_PATH", "POLL_INTERVAL"):
        monkeypatch.delenv(f"CLOUDVARS_{key}", raising=False)


class TestCloudConfig:
    """Tests for derived CloudConfig properties."""

    def test_defaults_to_local_mode(self):
        config = CloudConfig()

        assert not config.has_remote
        assert config.url is None
        assert config.local_prefix == CLOUD_PREFIX + "local storage"

    def test_url_scheme_follows_secure_flag(self):
        assert CloudConfig(host="example.com:9080").url == "wss://example.com:9080"
        assert CloudConfig(host="example.com:9080", secure=False).url == "ws://example.com:9080"

    def test_explicit_scheme_is_kept(self):
        assert CloudConfig(host="ws://localhost:9080/cloud").url == "ws://localhost:9080/cloud"


class TestLoadConfig:
    """Tests for load_config."""

    def test_no_path_returns_defaults(self):
        config = load_config(None)

        assert config.session.user == "player"
        assert config.store.prefix == "[s3] "
        assert not config.cloud.has_remote

    def test_missing_file_returns_defaults(self, tmp_path):
        config = load_config(tmp_path / "missing.yaml")

        assert config.cloud.host == ""

    def test_yaml_sections(self, tmp_path):
        """Test values from each section are applied."""
        path = tmp_path / "config.yaml"
        path.write_text(
            "session:\n"
            "  user: alice\n"
            "  project_id: 12345\n"
            "cloud:\n"
            "  host: clouddata.example.com\n"
            "  special: true\n"
            "store:\n"
            "  path: /tmp/cloudvars.db\n"
            "  poll_interval_seconds: 2\n"
        )

        config = load_config(path)

        assert config.session.user == "alice"
        assert config.session.project_id == "12345"
        assert config.cloud.url == "wss://clouddata.example.com"
        assert config.cloud.special is True
        assert config.store.path == "/tmp/cloudvars.db"
        assert config.store.poll_interval_seconds == 2

    def test_env_overrides(self, tmp_path, monkeypatch):
        """Test CLOUDVARS_* environment variables win over the file."""
        path = tmp_path / "config.yaml"
        path.write_text("cloud:\n  host: clouddata.example.com\n")
        monkeypatch.setenv("CLOUDVARS_HOST", "localhost:9080")
        monkeypatch.setenv("CLOUDVARS_SECURE", "false")
        monkeypatch.setenv("CLOUDVARS_USER", "bob")
        monkeypatch.setenv("CLOUDVARS_POLL_INTERVAL", "0.25")

        config = load_config(path)

        assert config.cloud.url == "ws://localhost:9080"
        assert config.session.user == "bob"
        assert config.store.poll_interval_seconds == 0.25

    def test_empty_host_env_forces_local_mode(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("cloud:\n  host: clouddata.example.com\n")
        monkeypatch.setenv("CLOUDVARS_HOST", "")

        assert not load_config(path).cloud.has_remote

    def test_unknown_key_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("cloud:\n  hostname: typo.example.com\n")

        with pytest.raises(ConfigError):
            load_config(path)

    def test_non_mapping_section_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("cloud: just-a-string\n")

        with pytest.raises(ConfigError):
            load_config(path)
