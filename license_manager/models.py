from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class LicenseState(str, Enum):
    DEACTIVATED = "Deactivated"
    ACTIVATED = "Activated"
    EXPIRED = "Expired"

    @classmethod
    def parse(cls, value: Optional[str]) -> "LicenseState":
        """Map a persisted option value to a state; anything unknown reads as Deactivated."""
        try:
            return cls(value)
        except ValueError:
            return cls.DEACTIVATED


class NoticeLevel(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    INFO = "info"


class Notice(BaseModel):
    code: str
    message: str
    level: NoticeLevel


class LicenseRecord(BaseModel):
    license_key: str = ""
    state: LicenseState = LicenseState.DEACTIVATED
    instance_id: Optional[str] = None
    deactivate_checkbox: str = "off"


class FormOutcome(BaseModel):
    notice: Notice
    state: LicenseState
    license_key: str = ""


# Remote results

class RemoteErrorKind(str, Enum):
    MISSING_KEY = "missing_key"
    TRANSPORT = "transport"
    API = "api_error"


class RemoteError(BaseModel):
    kind: RemoteErrorKind
    message: str
    status: Optional[int] = None


class RemoteResult(BaseModel):
    success: bool
    status: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[RemoteError] = None

    @property
    def message(self) -> str:
        return self.error.message if self.error else ""


class ActivationResult(RemoteResult):
    expires_at: Optional[str] = None


class DeactivationResult(RemoteResult):
    pass


class StatusResult(RemoteResult):
    expires_at: Optional[str] = None


class UpdateInfo(BaseModel):
    version: str
    id: Optional[str] = None
    slug: Optional[str] = None
    url: str = ""
    download_url: str = ""
    changelog: str = ""
    description: str = ""
    tested: str = ""
    requires: str = ""
    requires_php: str = ""
    upgrade_notice: str = ""


class UpdateCheckResult(BaseModel):
    update: Optional[UpdateInfo] = None
    error: Optional[RemoteError] = None


class PluginInformation(BaseModel):
    name: str
    slug: str
    version: str = ""
    author: str = ""
    homepage: str = ""
    requires: str = ""
    tested: str = ""
    requires_php: str = ""
    last_updated: str = ""
    sections: Dict[str, str] = Field(default_factory=dict)
    download_link: str = ""
    banners: Dict[str, str] = Field(default_factory=dict)
    system_info: Optional[Dict[str, Any]] = None


class InformationResult(BaseModel):
    info: Optional[PluginInformation] = None
    error: Optional[RemoteError] = None


# Host API models

class LicenseFormRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    licenseKey: Optional[str] = Field(default=None, alias="license_key")
    deactivate: Optional[Any] = None


class LicenseStatusResponse(BaseModel):
    hasLicense: bool
    status: str
    statusText: str
    licenseKey: Optional[str] = None
    instanceId: Optional[str] = None
    pluginName: Optional[str] = None


class UpdateCheckResponse(BaseModel):
    updateAvailable: bool
    currentVersion: str
    update: Optional[UpdateInfo] = None


class HealthCheckResponse(BaseModel):
    status: str
    service: str
    version: str
    instanceId: Optional[str] = None
    host: Optional[str] = None


class InstallationContext(BaseModel):
    host: str
    product_uuid: str
    version: str
    instance_id: str
