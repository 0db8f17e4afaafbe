"""
Pytest configuration and shared fixtures.
"""

import json
import os
from urllib.parse import parse_qs

import httpx
import pytest

from license_manager.config import LicenseConfig
from license_manager.database import create_store
from license_manager.engine import LicenseEngine
from license_manager.remote import RemoteClient
from license_manager.updates import UpdateAdvisory

ENDPOINTS = ("licenses/activate", "licenses/deactivate", "products/update", "licenses")


class FakeLicenseServer:
    """In-process licensing API behind an httpx MockTransport."""

    def __init__(self, api_prefix: str = "/wp-json/elm/v1/"):
        self.api_prefix = api_prefix
        self.responses = {}
        self.calls = []

    def respond(self, endpoint, status_code=200, json_body=None, raw=None, exc=None):
        self.responses[endpoint] = (status_code, json_body, raw, exc)

    def respond_data(self, endpoint, **data):
        self.respond(endpoint, json_body={"success": True, "data": data})

    def calls_to(self, endpoint):
        return [call for call in self.calls if call["endpoint"] == endpoint]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path[len(self.api_prefix):] if request.url.path.startswith(self.api_prefix) else request.url.path.lstrip("/")
        endpoint = next(e for e in ENDPOINTS if path == e or path.startswith(e + "/"))
        license_key = path[len(endpoint) + 1:]

        body = {}
        if request.content:
            content_type = request.headers.get("content-type", "")
            if content_type.startswith("application/json"):
                body = json.loads(request.content)
            else:
                body = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        license_key = license_key or body.get("license_key") or request.url.params.get("license_key", "")

        self.calls.append({"endpoint": endpoint, "key": license_key, "body": body, "request": request})

        if endpoint not in self.responses:
            return httpx.Response(404, json={"message": "No route was found matching the URL and request method."})

        status_code, json_body, raw, exc = self.responses[endpoint]
        if exc is not None:
            raise exc("Connection refused", request=request)
        if raw is not None:
            return httpx.Response(status_code, content=raw)
        return httpx.Response(status_code, json=json_body)


@pytest.fixture(autouse=True)
def clean_license_env(monkeypatch):
    """Keep LICENSE_* variables from the environment out of the tests."""
    for name in list(os.environ):
        if name.startswith("LICENSE_"):
            monkeypatch.delenv(name)


@pytest.fixture
def config_values(tmp_path):
    return {
        "api_url": "https://licenses.example.com",
        "rest_api_key": "ck_test_key",
        "rest_api_secret": "cs_test_secret",
        "product_uuid": "prod-uuid-1",
        "version": "1.0.0",
        "slug": "acme",
        "name": "Acme Plugin",
        "host": "https://site.example.com",
        "database_url": f"sqlite:///{tmp_path / 'options.db'}",
    }


@pytest.fixture
def config(config_values):
    return LicenseConfig(**config_values)


@pytest.fixture
def server():
    return FakeLicenseServer()


@pytest.fixture
def remote(config, server):
    return RemoteClient(config, transport=httpx.MockTransport(server.handler))


@pytest.fixture
def options(config):
    return create_store(config.database_url)


@pytest.fixture
def engine(config, options, remote):
    return LicenseEngine(config, options, remote=remote)


@pytest.fixture
def advisory(engine):
    return UpdateAdvisory(engine)


@pytest.fixture
def dialect_client(config_values):
    """Factory for a RemoteClient speaking another dialect, with its own fake server."""

    def make(dialect):
        config = LicenseConfig(**{**config_values, "api_dialect": dialect})
        server = FakeLicenseServer(api_prefix="/")
        return RemoteClient(config, transport=httpx.MockTransport(server.handler)), server

    return make
