"""
Configuration for TM1Rest.

Connection details for one or more TM1 instances, plus defaults for the
bulk engine, process polling and logging, all read from tm1_config.json.
String values may reference environment variables as ${VAR},
${VAR:-default} or $VAR so credentials never live in the file.

Example tm1_config.json:
```json
{
    "settings": {
        "default_instance": "production",
        "session_context": "TM1Rest Loader",
        "bulk": {"chunk_size": 500, "max_retries": 5, "retry_delay": 2000},
        "polling": {"timeout": 600, "poll_interval": 10},
        "logging": {"log_dir": "logs", "log_level": "INFO", "console_output": true}
    },
    "instances": {
        "production": {
            "connection_type": "onprem",
            "server": "prod-tm1.company.com",
            "port": 8010,
            "ssl": true,
            "user": "${PROD_TM1_USER}",
            "password": "${PROD_TM1_PASSWORD}"
        },
        "cloud": {
            "connection_type": "cloud",
            "cloud_region": "us-east",
            "cloud_tenant": "${TM1_TENANT}",
            "instance": "planning",
            "database": "Sales",
            "access_token": "${TM1_ACCESS_TOKEN}"
        }
    }
}
```
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .bulk.models import BulkWriteOptions

logger = logging.getLogger("tm1rest.config")

CONFIG_ENV_VAR = "TM1REST_CONFIG"
DEFAULT_SESSION_CONTEXT = "TM1Rest"

_SENSITIVE_KEYS = {"user", "password", "api_key", "access_token", "client_secret", "token"}


def resolve_env_value(value: Any) -> Any:
    """
    Resolve environment variable references in a config value.

    Supports ${VAR_NAME}, ${VAR_NAME:-default} and a bare $VAR_NAME.
    Non-string values are returned unchanged.
    """
    if not isinstance(value, str):
        return value

    if "${" in value and "}" in value[value.find("${") :]:
        start = value.find("${")
        end = value.find("}", start)
        env_expr = value[start + 2 : end]

        if ":-" in env_expr:
            var_name, default = env_expr.split(":-", 1)
            result = os.environ.get(var_name.strip(), default)
        else:
            result = os.environ.get(env_expr.strip(), "")

        resolved = value[:start] + result + value[end + 1 :]
        if "${" in resolved:
            return resolve_env_value(resolved)
        return resolved

    if value.startswith("$") and len(value) > 1:
        return os.environ.get(value[1:], value)

    return value


class PollingSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    timeout: float = Field(default=300, gt=0)
    poll_interval: float = Field(default=5, ge=0)


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    log_dir: str | None = "logs"
    log_level: str = "INFO"
    use_json: bool = False
    console_output: bool = True


class TM1InstanceConfig:
    """
    Connection settings for a single TM1 instance.

    Handles both on-premise and cloud instances with environment variable
    resolution for sensitive values.
    """

    def __init__(self, name: str, config: dict[str, Any]):
        self.name = name
        self._config = config
        self.description = config.get("description", "")
        self.connection_type = str(self.get("connection_type", "onprem")).lower()

    def get(self, key: str, default: Any = None) -> Any:
        """Get a config value with environment variable resolution."""
        return resolve_env_value(self._config.get(key, default))

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key, default)
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.lower() in ("true", "1", "yes", "on")
        return bool(value)

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.get(key, default)
        try:
            return int(value)
        except (ValueError, TypeError):
            return default

    def is_cloud(self) -> bool:
        return self.connection_type in ("cloud", "paas")

    def base_url(self) -> str:
        """REST API root for this instance."""
        explicit = self.get("base_url", "")
        if explicit:
            return explicit.rstrip("/")

        if self.is_cloud():
            region = self.get("cloud_region", "")
            tenant = self.get("cloud_tenant", "")
            url = f"https://{region}.planninganalytics.ibmcloud.com/tm1/api/{tenant}/v1"
            instance = self.get("instance", "")
            database = self.get("database", "")
            if instance and database:
                url = (
                    f"https://{region}.planninganalytics.ibmcloud.com/api/{tenant}/v0/tm1/"
                    f"{instance}/Databases('{database}')"
                )
            return url

        scheme = "https" if self.get_bool("ssl", True) else "http"
        return f"{scheme}://{self.get('server', 'localhost')}:{self.get_int('port', 8010)}/api/v1"

    def connection_params(self, session_context: str = DEFAULT_SESSION_CONTEXT) -> dict[str, Any]:
        """Keyword arguments for RestService."""
        params = {
            "base_url": self.base_url(),
            "ssl_verify": self.get_bool("ssl_verify", True),
            "timeout": float(self.get("timeout", 60)),
            "session_context": session_context,
        }

        access_token = self.get("access_token", "")
        if access_token:
            params["access_token"] = access_token
            logger.debug(f"Instance {self.name}: using access token authentication")
            return params

        params["user"] = self.get("user", "")
        params["password"] = self.get("password", "")
        namespace = self.get("namespace", "")
        if namespace:
            params["namespace"] = namespace
            logger.debug(f"Instance {self.name}: using CAM authentication")
        else:
            logger.debug(f"Instance {self.name}: using basic authentication")
        return params

    def to_dict(self) -> dict[str, Any]:
        """Describe the instance without credentials."""
        info = {
            "name": self.name,
            "description": self.description,
            "connection_type": "cloud" if self.is_cloud() else "onprem",
            "base_url": self.base_url(),
        }
        for key in self._config:
            if key not in info and key not in _SENSITIVE_KEYS:
                info[key] = self.get(key)
        return info

    def __repr__(self) -> str:
        return f"<TM1InstanceConfig name={self.name} type={self.connection_type}>"


class ClientConfig:
    """Parsed tm1_config.json."""

    def __init__(self, config_data: dict[str, Any], source: Path | None = None):
        self.source = source
        settings = config_data.get("settings", {}) or {}
        self.default_instance = resolve_env_value(settings.get("default_instance", "default"))
        self.session_context = resolve_env_value(
            settings.get("session_context", DEFAULT_SESSION_CONTEXT)
        )
        self._bulk = {k: resolve_env_value(v) for k, v in (settings.get("bulk") or {}).items()}
        self._polling = {k: resolve_env_value(v) for k, v in (settings.get("polling") or {}).items()}
        self._logging = {k: resolve_env_value(v) for k, v in (settings.get("logging") or {}).items()}

        self.instances: dict[str, TM1InstanceConfig] = {
            name: TM1InstanceConfig(name, config)
            for name, config in (config_data.get("instances") or {}).items()
        }
        logger.debug(f"Loaded {len(self.instances)} TM1 instance(s)")

    @classmethod
    def from_file(cls, path: str | Path) -> ClientConfig:
        config_path = Path(path)
        with config_path.open(encoding="utf-8") as f:
            data = json.load(f)
        logger.info(f"Loaded TM1 config from: {config_path}")
        return cls(data, source=config_path)

    @classmethod
    def load(cls, path: str | Path | None = None) -> ClientConfig:
        """Load from an explicit path or the first file found by find_config_file()."""
        config_path = Path(path) if path else find_config_file()
        if config_path is None:
            raise FileNotFoundError(
                f"tm1_config.json not found. Set {CONFIG_ENV_VAR} or pass a path explicitly."
            )
        return cls.from_file(config_path)

    def get_instance(self, name: str | None = None) -> TM1InstanceConfig:
        instance_name = name or self.default_instance
        if instance_name not in self.instances:
            raise KeyError(
                f"TM1 instance '{instance_name}' not configured. "
                f"Available instances: {list(self.instances)}"
            )
        return self.instances[instance_name]

    def list_instance_names(self) -> list[str]:
        return list(self.instances)

    def bulk_options(self) -> BulkWriteOptions:
        """Default write options (raises pydantic.ValidationError on bad values)."""
        return BulkWriteOptions(**self._bulk)

    def polling_settings(self) -> PollingSettings:
        return PollingSettings(**self._polling)

    def logging_settings(self) -> LoggingSettings:
        return LoggingSettings(**self._logging)


def find_config_file() -> Path | None:
    """Probe $TM1REST_CONFIG, ./tm1_config.json and ~/.tm1rest/tm1_config.json."""
    candidates = []
    if os.environ.get(CONFIG_ENV_VAR):
        candidates.append(Path(os.environ[CONFIG_ENV_VAR]))
    candidates.append(Path.cwd() / "tm1_config.json")
    candidates.append(Path.home() / ".tm1rest" / "tm1_config.json")

    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None
