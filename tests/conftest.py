"""Shared test fixtures."""

from __future__ import annotations

import subprocess
from datetime import datetime

import pytest

from mxprovision.context import ProvisioningContext
from mxprovision.errors import CommandError
from mxprovision.steps import Toolbox

SERVER_IP = "10.0.0.5"


class FakeRunner:
    """Records commands instead of running them; ``fail`` scripts a non-zero exit."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.kwargs: list[dict] = []
        self.failures: dict[tuple, tuple] = {}

    def fail(self, *prefix: str, returncode: int = 1, stdout: str = "", stderr: str = "boom") -> None:
        self.failures[prefix] = (returncode, stdout, stderr)

    def __call__(self, cmd, check=True, **kwargs):
        cmd = list(cmd)
        self.calls.append(cmd)
        self.kwargs.append(kwargs)
        returncode, stdout, stderr = 0, "", ""
        if cmd[:2] == ["systemctl", "is-active"]:
            stdout = "active\n"
        for prefix, outcome in self.failures.items():
            if tuple(cmd[: len(prefix)]) == prefix:
                returncode, stdout, stderr = outcome
        if check and returncode != 0:
            raise CommandError(cmd, returncode, stderr)
        return subprocess.CompletedProcess(cmd, returncode, stdout, stderr)

    def ran(self, *prefix: str) -> bool:
        return any(tuple(call[: len(prefix)]) == prefix for call in self.calls)


class FakeLookup:
    def __init__(self, records: dict[str, list[str]] | None = None) -> None:
        self.records = records or {}
        self.queries: list[str] = []

    def __call__(self, name: str) -> list[str]:
        self.queries.append(name)
        return self.records.get(name, [])


class StaticResolver:
    def __init__(self, context: ProvisioningContext) -> None:
        self.context = context
        self.calls = 0

    def resolve(self) -> ProvisioningContext:
        self.calls += 1
        return self.context


@pytest.fixture
def context() -> ProvisioningContext:
    return ProvisioningContext(
        domain="example.com",
        server_ip=SERVER_IP,
        mysql_root_password="rootpw",
        db_password="dbpw",
        install_ssl=True,
    )


@pytest.fixture
def clock():
    return lambda: datetime(2026, 10, 19, 12, 0, 0)


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def lookup() -> FakeLookup:
    return FakeLookup({"example.com": [SERVER_IP], "mail.example.com": [SERVER_IP]})


@pytest.fixture
def tools(tmp_path, runner, lookup, clock) -> Toolbox:
    return Toolbox(
        root=str(tmp_path),
        runner=runner,
        lookup=lookup,
        host_lookup=lambda name: SERVER_IP,
        clock=clock,
        is_root=lambda: True,
        command_exists=lambda name: True,
    )
