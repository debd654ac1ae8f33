"""Tests for configuration loading."""

import os

import pytest

from gdata_client import config


class TestEnvFile:
    """Test the .env loader."""

    def test_missing_file(self, tmp_path):
        """Should load nothing when the file does not exist."""
        assert config._load_env_file(tmp_path / ".env") == {}

    def test_parses_values(self, tmp_path, monkeypatch):
        """Should skip comments and strip quotes."""
        for name in ("GDATA_TEST_A", "GDATA_TEST_B", "GDATA_TEST_C"):
            monkeypatch.delenv(name, raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text(
            "# settings\n"
            "GDATA_TEST_A=plain\n"
            'GDATA_TEST_B="double quoted"\n'
            "GDATA_TEST_C='single'\n"
            "not a pair\n"
        )

        loaded = config._load_env_file(env_file)

        assert loaded == {
            "GDATA_TEST_A": "plain",
            "GDATA_TEST_B": "double quoted",
            "GDATA_TEST_C": "single",
        }
        assert os.environ["GDATA_TEST_B"] == "double quoted"
        for name in loaded:
            monkeypatch.delenv(name)

    def test_environment_wins(self, tmp_path, monkeypatch):
        """Should not override variables that are already set."""
        monkeypatch.setenv("GDATA_TEST_A", "from-env")
        env_file = tmp_path / ".env"
        env_file.write_text("GDATA_TEST_A=from-file\n")

        assert config._load_env_file(env_file) == {}
        assert os.environ["GDATA_TEST_A"] == "from-env"


class TestEnvNumbers:
    """Test numeric settings."""

    def test_int_default(self, monkeypatch):
        monkeypatch.delenv("GDATA_TEST_INT", raising=False)
        assert config._env_int("GDATA_TEST_INT", 7) == 7

    def test_int_value(self, monkeypatch):
        monkeypatch.setenv("GDATA_TEST_INT", "8192")
        assert config._env_int("GDATA_TEST_INT", 7) == 8192

    def test_int_invalid(self, monkeypatch):
        """Should name the variable in the error."""
        monkeypatch.setenv("GDATA_TEST_INT", "lots")
        with pytest.raises(ValueError, match="GDATA_TEST_INT"):
            config._env_int("GDATA_TEST_INT", 7)

    def test_float_value(self, monkeypatch):
        monkeypatch.setenv("GDATA_TEST_FLOAT", "2.5")
        assert config._env_float("GDATA_TEST_FLOAT", 1.0) == 2.5


class TestCredentialStatus:
    """Test credential discovery."""

    def test_status_shape(self, tmp_path, monkeypatch):
        """Should report which credentials exist."""
        google_dir = tmp_path / "google"
        monkeypatch.setattr(config, "CLIENT_HOME", tmp_path)
        monkeypatch.setattr(config, "GOOGLE_DIR", google_dir)
        monkeypatch.setattr(config, "ENV_FILE", tmp_path / ".env")
        monkeypatch.setattr(config, "GOOGLE_CREDENTIALS", google_dir / "credentials.json")
        monkeypatch.setattr(config, "GOOGLE_TOKEN", google_dir / "token.json")
        monkeypatch.setattr(config, "GOOGLE_SERVICE_ACCOUNT", google_dir / "key.json")
        monkeypatch.setenv("GDATA_USERNAME", "me@example.com")
        monkeypatch.delenv("GDATA_PASSWORD", raising=False)

        assert config.ensure_google_dir() == google_dir
        (google_dir / "credentials.json").write_text("{}")

        status = config.get_credential_status()
        assert status["client_home"] == str(tmp_path)
        assert status["env_file"] is False
        assert status["google"]["credentials"] is True
        assert status["google"]["token"] is False
        assert status["client_login"] == {"username": True, "password": False}
