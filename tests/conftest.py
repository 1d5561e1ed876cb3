"""Shared fixtures for the syncstream-config test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from syncstream_config.resolver import VariableResolver
from syncstream_config.sections import SectionRegistry
from syncstream_config.store import ConfigurationStore


@pytest.fixture
def environ() -> dict[str, str]:
    """An isolated environment mapping with a few prefixed variables."""
    return {
        "SS_HOST": "localhost",
        "SS_PORT": "8080",
        "SS_DATABASE_USER": "admin",
        "UNRELATED": "ignored",
    }


@pytest.fixture
def store() -> ConfigurationStore:
    """A store with plain, referencing and nested entries."""
    return ConfigurationStore(
        {
            "GREETING": "hello",
            "URL": "http://${env:HOST}",
            "Database": {
                "Host": "db.internal",
                "Port": "5432",
                "Url": "postgres://${Database:Host}:${Database:Port}",
            },
            "Servers": ["alpha", "beta"],
        }
    )


@pytest.fixture
def sections() -> SectionRegistry:
    return SectionRegistry()


@pytest.fixture
def resolver(store: ConfigurationStore, environ: dict[str, str], sections: SectionRegistry) -> VariableResolver:
    """Resolver over the sample store with the isolated environment."""
    return VariableResolver(store, environ=environ, sections=sections)


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    """A directory with one configuration file per supported format."""
    (tmp_path / "appsettings.json").write_text(
        '{"App": {"Name": "demo", "Debug": true, "Retries": 3}, "Greeting": "hello"}'
    )
    (tmp_path / "appsettings.yaml").write_text(
        "App:\n"
        "  Name: demo-yaml\n"
        "  Tags:\n"
        "    - a\n"
        "    - b\n"
        "Endpoint: http://${env:HOST}:${App:Port}\n"
    )
    (tmp_path / "appsettings.xml").write_text(
        "<configuration>\n"
        "  <App Port=\"9000\">\n"
        "    <Owner>ops</Owner>\n"
        "  </App>\n"
        "</configuration>\n"
    )
    return tmp_path
