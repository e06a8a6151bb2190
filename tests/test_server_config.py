"""
Tests for server configuration loading.
"""

import json
from unittest.mock import patch

import pytest

from shellsight.server.main import ShellSightServer


ENV_VARS = ["HOST", "PORT", "DEBUG", "CONFIG_DIR", "SHELLSIGHT_PER_USER", "S3_BUCKET", "S3_PREFIX"]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "server:\n"
        "  host: 127.0.0.1\n"
        "  port: 4000\n"
        "storage:\n"
        "  backend: memory\n"
        "  bucket: recordings\n"
        "  prefix: SSNREC\n"
        f"  config_file: {tmp_path / 'storage-config.json'}\n"
        "replay:\n"
        "  default_speed: 2\n"
        "logging:\n"
        "  level: warning\n"
    )
    return path


class TestShellSightServer:
    """Tests for YAML and environment configuration."""

    def test_missing_file_uses_defaults(self, tmp_path):
        server = ShellSightServer(str(tmp_path / "missing.yaml"))

        assert server.server_config.port == 3001
        assert server.server_config.default_speed == 1.0
        assert server.storage_config.backend == "filesystem"

    def test_yaml_values(self, config_file):
        server = ShellSightServer(str(config_file))

        assert server.server_config.host == "127.0.0.1"
        assert server.server_config.port == 4000
        assert server.server_config.default_speed == 2.0
        assert server.server_config.log_level == "WARNING"
        assert server.storage_config.bucket == "recordings"
        assert server.library.prefix == "SSNREC/"

    def test_environment_overrides(self, config_file, monkeypatch, tmp_path):
        monkeypatch.setenv("PORT", "5000")
        monkeypatch.setenv("DEBUG", "1")
        monkeypatch.setenv("S3_BUCKET", "from-env")
        monkeypatch.setenv("SHELLSIGHT_PER_USER", "true")
        monkeypatch.setenv("CONFIG_DIR", str(tmp_path / "cfg"))

        server = ShellSightServer(str(config_file))

        assert server.server_config.port == 5000
        assert server.server_config.log_level == "DEBUG"
        assert server.storage_config.bucket == "from-env"
        assert server.storage_config.per_user is True
        assert server.storage_config.config_file == str(tmp_path / "cfg" / "storage-config.json")

    def test_saved_bucket_wins(self, config_file, tmp_path):
        (tmp_path / "storage-config.json").write_text(json.dumps({"bucket": "saved"}))

        server = ShellSightServer(str(config_file))

        assert server.storage_config.bucket == "saved"
        assert server.library.bucket == "saved"

    def test_run_starts_uvicorn(self, config_file):
        server = ShellSightServer(str(config_file))

        with patch("shellsight.server.main.uvicorn.run") as mock_run:
            server.run()

        mock_run.assert_called_once_with(server.app, host="127.0.0.1", port=4000, log_level="warning")
