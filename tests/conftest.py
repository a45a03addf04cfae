"""
Pytest configuration and shared fixtures for TM1Rest tests.
"""

import json
import shutil
import sys
import tempfile
from collections.abc import Generator, Sequence
from pathlib import Path
from typing import Any

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from tm1rest.exceptions import TM1RestError  # noqa: E402
from tm1rest.rest import Response  # noqa: E402


class FakeCellService:
    """
    In-memory stand-in for CellService.

    Stores written cells per cube, records every write_values call and can
    be told to fail the next N writes or specific reads.
    """

    def __init__(self, dimensions: dict[str, list[str]] | None = None):
        self.dimensions = dimensions or {}
        self.store: dict[str, dict[tuple[str, ...], Any]] = {}
        self.write_calls: list[dict[str, Any]] = []
        self.read_calls: list[tuple[str, tuple[str, ...]]] = []
        self.fail_writes = 0
        self.failing_reads: set[tuple[str, tuple[str, ...]]] = set()
        self.failing_cubes: set[str] = set()
        self.cellset: dict[str, Any] = {"Axes": [], "Cells": []}
        self.mdx_calls: list[tuple[str, str | None]] = []

    async def get_cube_dimensions(self, cube: str) -> list[str]:
        return self.dimensions[cube]

    async def write_values(
        self,
        cube: str,
        cells: dict[tuple[str, ...], Any],
        increment: bool = False,
        sandbox_name: str | None = None,
    ) -> None:
        self.write_calls.append(
            {"cube": cube, "cells": dict(cells), "increment": increment, "sandbox": sandbox_name}
        )
        if self.fail_writes > 0:
            self.fail_writes -= 1
            raise TM1RestError("Server busy", status_code=503)
        if cube in self.failing_cubes:
            raise TM1RestError(f"Cube '{cube}' is locked", status_code=500)

        target = self.store.setdefault(cube, {})
        for coordinates, value in cells.items():
            if increment and not isinstance(value, str):
                target[coordinates] = float(target.get(coordinates) or 0) + value
            else:
                target[coordinates] = value

    async def get_value(
        self, cube: str, coordinates: Sequence[str], sandbox_name: str | None = None
    ) -> Any:
        key = (cube, tuple(coordinates))
        self.read_calls.append(key)
        if key in self.failing_reads:
            raise TM1RestError("Element not found", status_code=404)
        return self.store.get(cube, {}).get(tuple(coordinates))

    async def execute_mdx(self, mdx: str, sandbox_name: str | None = None) -> dict[str, Any]:
        self.mdx_calls.append((mdx, sandbox_name))
        return self.cellset


class FakeRestService:
    """
    Scripted stand-in for RestService.

    Responses are queued per (method, path prefix); each call pops the
    next queued item. Exceptions in the queue are raised.
    """

    def __init__(self):
        self.calls: list[tuple[str, str, Any]] = []
        self._queues: dict[tuple[str, str], list[Any]] = {}

    def queue(self, method: str, path_prefix: str, *items: Any) -> None:
        self._queues.setdefault((method, path_prefix), []).extend(items)

    def count(self, method: str, path_prefix: str) -> int:
        return sum(1 for m, p, _ in self.calls if m == method and p.startswith(path_prefix))

    async def _dispatch(self, method: str, path: str, body: Any = None) -> Response:
        self.calls.append((method, path, body))
        for (queued_method, prefix), items in self._queues.items():
            if queued_method == method and path.startswith(prefix) and items:
                item = items.pop(0) if len(items) > 1 else items[0]
                if isinstance(item, Exception):
                    raise item
                return Response(status_code=200, body=item)
        return Response(status_code=200, body={})

    async def get(self, path: str) -> Response:
        return await self._dispatch("GET", path)

    async def post(self, path: str, body: Any = None) -> Response:
        return await self._dispatch("POST", path, body)

    async def patch(self, path: str, body: Any = None) -> Response:
        return await self._dispatch("PATCH", path, body)

    async def delete(self, path: str) -> Response:
        return await self._dispatch("DELETE", path)


@pytest.fixture
def temp_dir() -> Generator[Path]:
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def temp_log_dir(temp_dir: Path) -> Path:
    """Create a temporary log directory."""
    log_dir = temp_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


@pytest.fixture
def fake_cells() -> FakeCellService:
    """CellService fake with a three dimensional Sales cube and a two dimensional Budget cube."""
    return FakeCellService(
        dimensions={
            "Sales": ["Year", "Period", "Measure"],
            "Budget": ["Version", "Account"],
        }
    )


@pytest.fixture
def fake_rest() -> FakeRestService:
    return FakeRestService()


@pytest.fixture
def sample_tm1_config() -> dict[str, Any]:
    """Sample tm1_config.json content with multiple instances."""
    return {
        "settings": {
            "default_instance": "production",
            "session_context": "Test Session",
            "bulk": {"chunk_size": 500, "max_retries": 5, "retry_delay": 250},
            "polling": {"timeout": 60, "poll_interval": 2},
            "logging": {"log_dir": "logs", "log_level": "DEBUG", "console_output": False},
        },
        "instances": {
            "production": {
                "description": "Production TM1 Server",
                "connection_type": "onprem",
                "server": "prod-tm1.local",
                "port": "8010",
                "ssl": True,
                "user": "admin",
                "password": "secret",
            },
            "development": {
                "description": "Development TM1 Server",
                "connection_type": "onprem",
                "server": "dev-tm1.local",
                "port": "8011",
                "ssl": False,
                "user": "dev",
                "password": "dev",
                "namespace": "LDAP",
            },
            "cloud": {
                "description": "Cloud TM1 Instance",
                "connection_type": "cloud",
                "cloud_region": "us-east",
                "cloud_tenant": "test-tenant",
                "access_token": "cloud-token",
            },
        },
    }


@pytest.fixture
def temp_config_file(temp_dir: Path, sample_tm1_config: dict[str, Any]) -> Path:
    """Write sample_tm1_config to a temporary tm1_config.json."""
    config_path = temp_dir / "tm1_config.json"
    with open(config_path, "w") as f:
        json.dump(sample_tm1_config, f)
    return config_path
