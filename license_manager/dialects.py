"""
API dialects understood by the remote client.

Each licensing backend speaks the same logical operations but differs in how
requests are authenticated and where the license key travels. A dialect turns
(endpoint, license key, body, method) into the keyword arguments for an httpx
request.
"""

import base64
from urllib.parse import quote
from typing import Any, Dict, Optional

from license_manager.config import LicenseConfig


class ApiDialect:
    name = ""
    api_path = ""
    form_encoded = False
    key_in_path = True

    def __init__(self, config: LicenseConfig):
        self.config = config

    @property
    def base_url(self) -> str:
        return self.config.api_url.rstrip("/") + "/" + self.api_path

    def auth_headers(self) -> Dict[str, str]:
        raise NotImplementedError

    def build_request(
        self,
        endpoint: str,
        license_key: str = "",
        body: Optional[Dict[str, Any]] = None,
        method: str = "POST",
    ) -> Dict[str, Any]:
        body = dict(body or {})
        url = self.base_url + endpoint
        params: Dict[str, Any] = {}

        if license_key:
            if self.key_in_path:
                url += "/" + quote(license_key, safe="")
            elif method == "GET":
                params["license_key"] = license_key
            else:
                body["license_key"] = license_key

        request: Dict[str, Any] = {
            "method": method,
            "url": url,
            "headers": {"Accept": "application/json", **self.auth_headers()},
        }
        if params:
            request["params"] = params
        if body and method != "GET":
            request["data" if self.form_encoded else "json"] = body
        return request


class ElmDialect(ApiDialect):
    """Enwikuna License Manager REST API: key in the path, HTTP Basic auth."""

    name = "elm"
    api_path = "wp-json/elm/v1/"
    form_encoded = True

    def auth_headers(self) -> Dict[str, str]:
        credentials = f"{self.config.rest_api_key}:{self.config.rest_api_secret}"
        token = base64.b64encode(credentials.encode()).decode()
        return {"Authorization": f"Basic {token}"}


class BearerDialect(ApiDialect):
    name = "bearer"
    key_in_path = False

    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.config.rest_api_key}"}


class HeaderDialect(ApiDialect):
    name = "header"

    def auth_headers(self) -> Dict[str, str]:
        return {
            "X-API-Key": self.config.rest_api_key,
            "X-API-Secret": self.config.rest_api_secret,
        }


DIALECTS = {dialect.name: dialect for dialect in (ElmDialect, BearerDialect, HeaderDialect)}


def get_dialect(config: LicenseConfig) -> ApiDialect:
    return DIALECTS[config.api_dialect](config)
