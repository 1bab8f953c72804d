"""Tests for version reporting.

``progression_server.__version__`` is resolved from the installed package
metadata. The FastAPI app and the root endpoint must report the same value.
"""

from __future__ import annotations

import re

import pytest
from fastapi.testclient import TestClient

import progression_server

_SEMVER_RE = re.compile(r"^\d+\.\d+\.\d+(-[A-Za-z0-9]+(\.[A-Za-z0-9]+)*)?$")


@pytest.mark.unit
class TestVersionAttribute:
    def test_version_is_a_string(self) -> None:
        assert isinstance(progression_server.__version__, str)
        assert progression_server.__version__

    def test_version_matches_semver(self) -> None:
        assert _SEMVER_RE.match(progression_server.__version__)


@pytest.mark.api
class TestVersionInApp:
    def test_openapi_version_matches_package(self, services) -> None:
        from progression_server.api.server import create_app

        app = create_app(services)
        assert app.version == progression_server.__version__

    def test_root_endpoint_version_matches_package(self, services) -> None:
        from progression_server.api.server import create_app

        client = TestClient(create_app(services))
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["version"] == progression_server.__version__
