from typing import Optional

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

REQUIRED_OPTIONS = ("api_url", "rest_api_key", "rest_api_secret", "product_uuid", "version", "slug", "name")

API_DIALECTS = ("elm", "bearer", "header")


class ConfigurationError(Exception):
    """Raised when the license manager is constructed without a required option."""

    def __init__(self, option: str, message: Optional[str] = None):
        self.option = option
        super().__init__(message or f'License Manager: Required option "{option}" is missing.')

    @classmethod
    def from_validation_error(cls, exc: ValidationError) -> "ConfigurationError":
        error = exc.errors()[0]
        option = str(error["loc"][0]) if error.get("loc") else "unknown"
        if error["type"] in ("missing", "value_error") and option in REQUIRED_OPTIONS:
            return cls(option)
        return cls(option, f'License Manager: Invalid option "{option}": {error["msg"]}')


class LicenseConfig(BaseSettings):
    # License Server Configuration
    api_url: str
    rest_api_key: str
    rest_api_secret: str
    api_dialect: str = "elm"

    # Product Info
    product_uuid: str
    version: str
    slug: str
    name: str
    plugin_slug: Optional[str] = None
    plugin_name: Optional[str] = None
    plugin_file: str = ""

    # Installation Info
    instance_id: Optional[str] = None  # Generated on first use when not set
    host: Optional[str] = None  # Product-scoped host fingerprint when not set

    # Options layout
    option_namespace: Optional[str] = None
    settings_section: Optional[str] = None
    text_domain: str = "default"
    capabilities: str = "manage_options"

    # Database
    database_url: str = "sqlite:///license_manager.db"

    model_config = SettingsConfigDict(env_prefix="LICENSE_", env_file=".env", extra="ignore", frozen=True)

    def __init__(self, **values):
        try:
            super().__init__(**values)
        except ValidationError as exc:
            raise ConfigurationError.from_validation_error(exc) from exc

    @field_validator(*REQUIRED_OPTIONS, mode="before")
    @classmethod
    def _require_value(cls, value):
        if value is None or not str(value).strip():
            raise ValueError("value is required")
        return str(value).strip()

    @field_validator("api_dialect")
    @classmethod
    def _known_dialect(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in API_DIALECTS:
            raise ValueError(f"expected one of {', '.join(API_DIALECTS)}")
        return value

    @property
    def option_group(self) -> str:
        return self.option_namespace or f"{self.slug}_license"

    @property
    def section(self) -> str:
        return self.settings_section or f"{self.slug}_settings_admin_license"

    @property
    def effective_plugin_slug(self) -> str:
        return self.plugin_slug or self.slug

    @property
    def effective_plugin_name(self) -> str:
        return self.plugin_name or self.name
