import logging
from typing import Any, Dict, Optional, Tuple

import httpx
from packaging.version import InvalidVersion, Version
from pydantic import ValidationError

from license_manager.config import LicenseConfig
from license_manager.dialects import ApiDialect, get_dialect
from license_manager.models import (
    ActivationResult,
    DeactivationResult,
    InformationResult,
    InstallationContext,
    PluginInformation,
    RemoteError,
    RemoteErrorKind,
    StatusResult,
    UpdateCheckResult,
    UpdateInfo,
)

logger = logging.getLogger(__name__)

UNKNOWN_ERROR = "Unknown error occurred."
INVALID_RESPONSE = "Invalid response from the license server."


def _text(data: Dict[str, Any], name: str, default: Any = None) -> Any:
    """Read a response field as text; nested values are left for validation to reject."""
    value = data.get(name)
    if value is None or value == "":
        return default
    if isinstance(value, (str, int, float, bool)):
        return str(value)
    return value


def mask_key(license_key: str) -> str:
    if len(license_key) <= 4:
        return "****"
    return "****" + license_key[-4:]


def is_newer_version(new_version: str, current_version: str) -> bool:
    """Strict semantic comparison; unparsable versions never count as newer."""
    if not new_version or not current_version:
        return False
    try:
        return Version(new_version) > Version(current_version)
    except InvalidVersion:
        logger.warning("Cannot compare versions %r and %r", new_version, current_version)
        return False


class RemoteClient:
    """
    HTTP boundary to the licensing API.

    Every call returns a result model; transport and HTTP failures are
    reported through its ``error`` field and never raised.
    """

    TIMEOUT = 45.0
    MAX_REDIRECTS = 5

    def __init__(self, config: LicenseConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.dialect: ApiDialect = get_dialect(config)
        self.transport = transport

    @property
    def api_url(self) -> str:
        return self.dialect.base_url

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.TIMEOUT,
            follow_redirects=True,
            max_redirects=self.MAX_REDIRECTS,
            verify=True,
            transport=self.transport,
        )

    async def _request(
        self,
        endpoint: str,
        license_key: str = "",
        body: Optional[Dict[str, Any]] = None,
        method: str = "POST",
    ) -> Tuple[Dict[str, Any], Optional[RemoteError]]:
        request = self.dialect.build_request(endpoint, license_key, body, method)
        logger.debug("%s %s (key %s)", method, endpoint, mask_key(license_key) if license_key else "-")

        try:
            async with self._client() as client:
                response = await client.request(**request)
        except httpx.HTTPError as e:
            logger.warning("License API %s unreachable: %s", endpoint, e.__class__.__name__)
            return {}, RemoteError(
                kind=RemoteErrorKind.TRANSPORT,
                message=f"Could not connect to the license server: {str(e) or e.__class__.__name__}",
            )

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code >= 400:
            message = self._error_message(payload)
            logger.warning("License API %s returned %s: %s", endpoint, response.status_code, message)
            return {}, RemoteError(kind=RemoteErrorKind.API, message=message, status=response.status_code)

        # A missing or null envelope is an empty answer; any other shape is malformed
        data = payload.get("data") if isinstance(payload, dict) else payload
        if data is None and payload is not None:
            data = {}
        if not isinstance(data, dict):
            return {}, RemoteError(
                kind=RemoteErrorKind.API,
                message=INVALID_RESPONSE,
                status=response.status_code,
            )
        return data, None

    @staticmethod
    def _error_message(payload: Any) -> str:
        if isinstance(payload, dict):
            if payload.get("message"):
                return str(payload["message"])
            error = payload.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
        return UNKNOWN_ERROR

    @staticmethod
    def _missing_key(operation: str) -> RemoteError:
        return RemoteError(
            kind=RemoteErrorKind.MISSING_KEY,
            message=f"The License Key is missing from the {operation} request.",
        )

    @staticmethod
    def _invalid_response(exc: ValidationError) -> RemoteError:
        logger.warning("License API returned unexpected fields: %s", exc.errors()[0].get("loc"))
        return RemoteError(kind=RemoteErrorKind.API, message=INVALID_RESPONSE)

    async def activate(self, license_key: str, context: InstallationContext) -> ActivationResult:
        if not license_key:
            return ActivationResult(success=False, error=self._missing_key("activation"))

        data, error = await self._request(
            "licenses/activate",
            license_key,
            {
                "host": context.host,
                "product_uuid": context.product_uuid,
                "version": context.version,
                "instance": context.instance_id,
            },
        )
        if error:
            return ActivationResult(success=False, error=error)

        try:
            return ActivationResult(
                success=bool(data),
                status=_text(data, "status"),
                expires_at=_text(data, "expires_at"),
                data=data,
            )
        except ValidationError as exc:
            return ActivationResult(success=False, error=self._invalid_response(exc))

    async def deactivate(self, license_key: str, context: InstallationContext) -> DeactivationResult:
        if not license_key:
            return DeactivationResult(success=False, error=self._missing_key("deactivation"))

        data, error = await self._request(
            "licenses/deactivate",
            license_key,
            {"host": context.host, "instance": context.instance_id},
        )
        if error:
            return DeactivationResult(success=False, error=error)

        try:
            return DeactivationResult(success=True, status=_text(data, "status"), data=data)
        except ValidationError as exc:
            return DeactivationResult(success=False, error=self._invalid_response(exc))

    async def status(self, license_key: str) -> StatusResult:
        """Read-only probe; does not consume an activation."""
        if not license_key:
            return StatusResult(success=False, error=self._missing_key("status"))

        data, error = await self._request("licenses", license_key, method="GET")
        if error:
            return StatusResult(success=False, error=error)

        try:
            return StatusResult(
                success=bool(data),
                status=_text(data, "status"),
                expires_at=_text(data, "expires_at"),
                data=data,
            )
        except ValidationError as exc:
            return StatusResult(success=False, error=self._invalid_response(exc))

    async def check_update(self, license_key: str, context: InstallationContext) -> UpdateCheckResult:
        if not license_key:
            return UpdateCheckResult(error=self._missing_key("update"))

        data, error = await self._request("products/update", license_key, method="GET")
        if error:
            return UpdateCheckResult(error=error)

        new_version = _text(data, "version", "")
        if not isinstance(new_version, str):
            return UpdateCheckResult(error=RemoteError(kind=RemoteErrorKind.API, message=INVALID_RESPONSE))
        if not is_newer_version(new_version, context.version):
            return UpdateCheckResult()

        try:
            update = UpdateInfo(
                version=new_version,
                id=_text(data, "id"),
                slug=_text(data, "slug"),
                url=_text(data, "url", ""),
                download_url=_text(data, "download_url", ""),
                changelog=_text(data, "changelog", ""),
                description=_text(data, "description", ""),
                tested=_text(data, "tested", ""),
                requires=_text(data, "requires", ""),
                requires_php=_text(data, "requires_php", ""),
                upgrade_notice=_text(data, "upgrade_notice", ""),
            )
        except ValidationError as exc:
            return UpdateCheckResult(error=self._invalid_response(exc))
        return UpdateCheckResult(update=update)

    async def information(self, license_key: str) -> InformationResult:
        if not license_key:
            return InformationResult(error=self._missing_key("information"))

        data, error = await self._request("products/update", license_key, method="GET")
        if error:
            return InformationResult(error=error)
        if not data:
            return InformationResult()

        try:
            info = PluginInformation(
                name=_text(data, "name") or self.config.name,
                slug=_text(data, "slug") or self.config.effective_plugin_slug,
                version=_text(data, "version", ""),
                author=_text(data, "author", ""),
                homepage=_text(data, "homepage", ""),
                requires=_text(data, "requires", ""),
                tested=_text(data, "tested", ""),
                requires_php=_text(data, "requires_php", ""),
                last_updated=_text(data, "released_at", ""),
                sections={
                    "description": _text(data, "description", ""),
                    "changelog": _text(data, "changelog", ""),
                },
                download_link=_text(data, "download_url", ""),
            )
        except ValidationError as exc:
            return InformationResult(error=self._invalid_response(exc))
        return InformationResult(info=info)
