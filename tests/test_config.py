"""
Tests for tm1_config.json loading and instance settings.
"""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from tm1rest.config import (
    ClientConfig,
    TM1InstanceConfig,
    find_config_file,
    resolve_env_value,
)


class TestResolveEnvValue:
    """Tests for resolve_env_value()."""

    def test_braced_variable(self):
        """Should substitute ${VAR}."""
        with patch.dict(os.environ, {"TM1_USER": "admin"}):
            assert resolve_env_value("${TM1_USER}") == "admin"

    def test_default_value(self):
        """Should fall back to the default in ${VAR:-default}."""
        with patch.dict(os.environ, {}, clear=True):
            assert resolve_env_value("${TM1_PORT:-8010}") == "8010"

    def test_embedded_and_multiple(self):
        """Should resolve several references inside a string."""
        with patch.dict(os.environ, {"HOST": "tm1", "PORT": "443"}):
            assert resolve_env_value("https://${HOST}:${PORT}/api") == "https://tm1:443/api"

    def test_bare_variable(self):
        """Should resolve $VAR and keep it literal when unset."""
        with patch.dict(os.environ, {"TM1_TOKEN": "tok"}, clear=True):
            assert resolve_env_value("$TM1_TOKEN") == "tok"
            assert resolve_env_value("$MISSING") == "$MISSING"

    def test_non_string(self):
        """Should return non string values unchanged."""
        assert resolve_env_value(8010) == 8010
        assert resolve_env_value(True) is True


class TestTM1InstanceConfig:
    """Tests for TM1InstanceConfig class."""

    def test_basic_config(self):
        """Should create instance config with basic settings."""
        instance = TM1InstanceConfig(
            "test", {"description": "Test TM1 Server", "server": "localhost", "port": "8010"}
        )

        assert instance.name == "test"
        assert instance.description == "Test TM1 Server"
        assert instance.connection_type == "onprem"
        assert instance.is_cloud() is False

    def test_get_bool_and_int(self):
        """Should convert values to boolean and integer."""
        instance = TM1InstanceConfig(
            "test", {"ssl": "true", "verify": "no", "port": "8010", "bad": "x"}
        )

        assert instance.get_bool("ssl") is True
        assert instance.get_bool("verify") is False
        assert instance.get_bool("missing", True) is True
        assert instance.get_int("port") == 8010
        assert instance.get_int("bad", 5) == 5

    def test_onprem_base_url(self):
        """Should build the on-premise API URL from server, port and ssl."""
        secure = TM1InstanceConfig("a", {"server": "tm1.local", "port": 8010})
        plain = TM1InstanceConfig("b", {"server": "tm1.local", "port": "5000", "ssl": False})

        assert secure.base_url() == "https://tm1.local:8010/api/v1"
        assert plain.base_url() == "http://tm1.local:5000/api/v1"

    def test_explicit_base_url(self):
        """Should prefer an explicit base_url."""
        instance = TM1InstanceConfig("a", {"base_url": "https://gateway/tm1/api/v1/"})

        assert instance.base_url() == "https://gateway/tm1/api/v1"

    def test_cloud_base_url(self):
        """Should build cloud URLs for v1 and instance/database layouts."""
        v1 = TM1InstanceConfig(
            "c", {"connection_type": "cloud", "cloud_region": "us-east", "cloud_tenant": "T1"}
        )
        v12 = TM1InstanceConfig(
            "d",
            {
                "connection_type": "cloud",
                "cloud_region": "eu-de",
                "cloud_tenant": "T2",
                "instance": "planning",
                "database": "Sales",
            },
        )

        assert v1.base_url() == "https://us-east.planninganalytics.ibmcloud.com/tm1/api/T1/v1"
        assert v12.base_url() == (
            "https://eu-de.planninganalytics.ibmcloud.com/api/T2/v0/tm1/"
            "planning/Databases('Sales')"
        )

    def test_connection_params_basic(self):
        """Should return RestService kwargs with user and password."""
        with patch.dict(os.environ, {"TM1_PASSWORD": "s3cret"}):
            instance = TM1InstanceConfig(
                "a", {"server": "tm1", "port": 1, "user": "admin", "password": "${TM1_PASSWORD}"}
            )
            params = instance.connection_params("Loader")

        assert params == {
            "base_url": "https://tm1:1/api/v1",
            "ssl_verify": True,
            "timeout": 60.0,
            "session_context": "Loader",
            "user": "admin",
            "password": "s3cret",
        }

    def test_connection_params_cam_and_token(self):
        """Should add namespace for CAM and only the token for token auth."""
        cam = TM1InstanceConfig("a", {"user": "u", "password": "p", "namespace": "LDAP"})
        token = TM1InstanceConfig("b", {"access_token": "tok", "user": "ignored"})

        assert cam.connection_params()["namespace"] == "LDAP"
        token_params = token.connection_params()
        assert token_params["access_token"] == "tok"
        assert "user" not in token_params

    def test_to_dict_hides_credentials(self):
        """Should not expose user, password or tokens."""
        instance = TM1InstanceConfig(
            "a", {"server": "tm1", "user": "admin", "password": "pw", "access_token": "t"}
        )

        info = instance.to_dict()

        assert info["server"] == "tm1"
        assert "password" not in info
        assert "access_token" not in info
        assert "user" not in info


class TestClientConfig:
    """Tests for ClientConfig."""

    def test_from_file(self, temp_config_file):
        """Should load settings and instances."""
        config = ClientConfig.from_file(temp_config_file)

        assert config.source == temp_config_file
        assert config.default_instance == "production"
        assert config.session_context == "Test Session"
        assert config.list_instance_names() == ["production", "development", "cloud"]

    def test_get_instance(self, temp_config_file):
        """Should return the default instance or a named one."""
        config = ClientConfig.from_file(temp_config_file)

        assert config.get_instance().name == "production"
        assert config.get_instance("cloud").is_cloud() is True

    def test_unknown_instance(self, temp_config_file):
        """Should raise KeyError listing the configured instances."""
        config = ClientConfig.from_file(temp_config_file)

        with pytest.raises(KeyError, match="staging"):
            config.get_instance("staging")

    def test_settings_blocks(self, temp_config_file):
        """Should expose bulk, polling and logging settings."""
        config = ClientConfig.from_file(temp_config_file)

        bulk = config.bulk_options()
        assert (bulk.chunk_size, bulk.max_retries, bulk.retry_delay) == (500, 5, 250)
        assert config.polling_settings().timeout == 60
        assert config.polling_settings().poll_interval == 2
        assert config.logging_settings().log_level == "DEBUG"
        assert config.logging_settings().console_output is False

    def test_defaults_without_settings(self):
        """Should fall back to defaults when settings are missing."""
        config = ClientConfig({"instances": {}})

        assert config.default_instance == "default"
        assert config.bulk_options().chunk_size == 1000
        assert config.polling_settings().timeout == 300

    def test_invalid_chunk_size(self):
        """Should reject a non-positive chunk size."""
        config = ClientConfig({"settings": {"bulk": {"chunk_size": 0}}})

        with pytest.raises(ValidationError):
            config.bulk_options()

    def test_load_missing(self, temp_dir, monkeypatch):
        """Should raise FileNotFoundError when no config file exists."""
        monkeypatch.delenv("TM1REST_CONFIG", raising=False)
        monkeypatch.chdir(temp_dir)
        monkeypatch.setattr(Path, "home", lambda: temp_dir)

        with pytest.raises(FileNotFoundError):
            ClientConfig.load()


class TestFindConfigFile:
    """Tests for find_config_file()."""

    def test_env_var_first(self, temp_dir, monkeypatch):
        """Should prefer $TM1REST_CONFIG."""
        env_file = temp_dir / "custom.json"
        env_file.write_text(json.dumps({}))
        (temp_dir / "tm1_config.json").write_text(json.dumps({}))
        monkeypatch.setenv("TM1REST_CONFIG", str(env_file))
        monkeypatch.chdir(temp_dir)

        assert find_config_file() == env_file

    def test_current_directory(self, temp_config_file, monkeypatch):
        """Should find tm1_config.json in the working directory."""
        monkeypatch.delenv("TM1REST_CONFIG", raising=False)
        monkeypatch.chdir(temp_config_file.parent)

        assert find_config_file() == temp_config_file
