import logging
import re
from typing import Any, Mapping, Optional

from license_manager.config import LicenseConfig
from license_manager.database import APIKEY, DEACTIVATE_CHECKBOX, LicenseStore, OptionStore, create_store
from license_manager.fingerprint import get_host_fingerprint
from license_manager.models import (
    FormOutcome,
    InstallationContext,
    LicenseRecord,
    LicenseState,
    LicenseStatusResponse,
    Notice,
    NoticeLevel,
)
from license_manager.remote import RemoteClient, mask_key

logger = logging.getLogger(__name__)

MAX_KEY_LENGTH = 191
TRUTHY = ("on", "1", "true", "yes")

STATUS_LABELS = {
    LicenseState.ACTIVATED: ("active", "Active"),
    LicenseState.EXPIRED: ("expired", "Expired"),
    LicenseState.DEACTIVATED: ("inactive", "Not Activated"),
}


class LicenseEngine:
    """
    License lifecycle for one installation.

    Reconciles the locally stored license state with the licensing API.
    Remote failures never escape: each public operation returns a
    FormOutcome carrying exactly one notice for the user.
    """

    def __init__(self, config: LicenseConfig, options: OptionStore, remote: Optional[RemoteClient] = None):
        self.config = config
        self.store = LicenseStore(options, config.option_group)
        self.remote = remote or RemoteClient(config)
        self._host = config.host

    @classmethod
    def from_config(cls, config: LicenseConfig, **kwargs) -> "LicenseEngine":
        return cls(config, create_store(config.database_url), **kwargs)

    # Installation context

    @property
    def instance_id(self) -> str:
        return self.store.get_or_create_instance(self.config.instance_id)

    @property
    def host(self) -> str:
        if not self._host:
            self._host = get_host_fingerprint(self.config.product_uuid)
        return self._host

    def context(self) -> InstallationContext:
        return InstallationContext(
            host=self.host,
            product_uuid=self.config.product_uuid,
            version=self.config.version,
            instance_id=self.instance_id,
        )

    # Form submission

    async def submit_license_form(self, form: Mapping[str, Any]) -> FormOutcome:
        """
        Handle a license settings form submission.

        A truthy deactivate flag wins over everything else in the form,
        including a newly typed key.
        """
        license_key = self._clean_key(self._form_value(form, APIKEY, "license_key", "licenseKey"))
        record = self.store.read()

        if self._is_truthy(self._form_value(form, DEACTIVATE_CHECKBOX, "deactivate")):
            return await self._deactivate(license_key or record.license_key)

        if not license_key:
            return self._outcome(
                "license_missing", "Please enter a license key.", NoticeLevel.ERROR, record
            )

        if len(license_key) > MAX_KEY_LENGTH or " " in license_key:
            return self._outcome(
                "license_invalid", "The license key format is invalid.", NoticeLevel.ERROR, record
            )

        if license_key == record.license_key and record.state == LicenseState.ACTIVATED:
            return await self.resync_status()

        return await self._activate(license_key, record)

    async def _deactivate(self, license_key: str) -> FormOutcome:
        result = None
        if license_key:
            result = await self.remote.deactivate(license_key, self.context())

        self.store.write(license_key="", state=LicenseState.DEACTIVATED, deactivate_checkbox="off")
        record = self.store.read()

        if result is None:
            logger.info("License deactivated locally; no key stored")
            return self._outcome(
                "deactivate_msg",
                "License deactivated locally (no key found to deactivate remotely).",
                NoticeLevel.WARNING,
                record,
            )

        if result.success:
            logger.info("License %s deactivated", mask_key(license_key))
            return self._outcome(
                "deactivate_msg", "License deactivated successfully.", NoticeLevel.SUCCESS, record
            )

        logger.warning("License %s deactivated locally: %s", mask_key(license_key), result.message)
        return self._outcome("deactivate_msg", "License deactivated locally.", NoticeLevel.WARNING, record)

    async def _activate(self, license_key: str, record: LicenseRecord) -> FormOutcome:
        context = self.context()

        if record.license_key and record.license_key != license_key:
            # Free the old seat; the new activation goes ahead whatever happens
            previous = await self.remote.deactivate(record.license_key, context)
            if not previous.success:
                logger.warning(
                    "Could not release previous license %s: %s",
                    mask_key(record.license_key),
                    previous.message,
                )

        result = await self.remote.activate(license_key, context)

        if result.error:
            self.store.write(state=LicenseState.DEACTIVATED)
            logger.warning("Activation of %s failed: %s", mask_key(license_key), result.error.message)
            return self._outcome(
                "license_client_error", result.error.message, NoticeLevel.ERROR, self.store.read()
            )

        if result.success and result.status == "active":
            self.store.write(license_key=license_key, state=LicenseState.ACTIVATED, deactivate_checkbox="off")
            logger.info("License %s activated", mask_key(license_key))
            return self._outcome(
                "activate_msg", "License activated successfully.", NoticeLevel.SUCCESS, self.store.read()
            )

        if result.success and result.status == "expired":
            self.store.write(license_key=license_key, state=LicenseState.EXPIRED)
            logger.info("License %s is expired", mask_key(license_key))
            return self._outcome("expired_msg", "License has expired.", NoticeLevel.WARNING, self.store.read())

        self.store.write(state=LicenseState.DEACTIVATED)
        logger.warning("Activation of %s returned status %r", mask_key(license_key), result.status)
        return self._outcome(
            "not_activated_error",
            "The license key activation could not be completed.",
            NoticeLevel.ERROR,
            self.store.read(),
        )

    async def resync_status(self) -> FormOutcome:
        """
        Re-read the activation status of the stored key from the licensing API.

        Only an ``active`` or ``expired`` answer changes local state; any
        failure keeps the last known status.
        """
        record = self.store.read()
        if not record.license_key:
            return self._outcome("status_msg", "No license key to verify.", NoticeLevel.INFO, record)

        result = await self.remote.status(record.license_key)

        if result.error or not result.success:
            message = result.message or "The license server returned no status."
            logger.warning("Status check for %s failed: %s", mask_key(record.license_key), message)
            return self._outcome(
                "status_error", f"Could not verify the license status: {message}", NoticeLevel.WARNING, record
            )

        if result.status == "active":
            self.store.write(state=LicenseState.ACTIVATED)
            return self._outcome("status_msg", "License is active.", NoticeLevel.SUCCESS, self.store.read())

        if result.status == "expired":
            self.store.write(state=LicenseState.EXPIRED)
            return self._outcome("expired_msg", "License has expired.", NoticeLevel.WARNING, self.store.read())

        logger.info("Status check for %s returned %r", mask_key(record.license_key), result.status)
        return self._outcome(
            "status_error",
            f"The license server reported status \"{result.status}\".",
            NoticeLevel.WARNING,
            record,
        )

    # Read-only queries

    def is_license_active(self) -> bool:
        return self.store.read().state == LicenseState.ACTIVATED

    async def get_api_key_status(self, live: bool = False) -> bool:
        """
        Return True if the license is activated.

        With live=True the licensing API is asked instead of local state;
        nothing is written either way.
        """
        if not live:
            return self.is_license_active()

        license_key = self.store.read().license_key
        if not license_key:
            return False
        result = await self.remote.status(license_key)
        return result.success and result.status == "active"

    def status_summary(self) -> LicenseStatusResponse:
        record = self.store.read()
        status, label = STATUS_LABELS[record.state]
        return LicenseStatusResponse(
            hasLicense=bool(record.license_key),
            status=status,
            statusText=label,
            licenseKey=record.license_key or None,
            instanceId=record.instance_id,
            pluginName=self.config.effective_plugin_name,
        )

    def get_record(self) -> LicenseRecord:
        return self.store.read()

    def get_option_key(self, key: str) -> str:
        return self.store.get_option_key(key)

    def get_option_value(self, key: str) -> Optional[str]:
        return self.store.get_option_value(key)

    def get_option_group(self) -> str:
        return self.config.option_group

    def get_settings_section(self) -> str:
        return self.config.section

    def get_text_domain(self) -> str:
        return self.config.text_domain

    def get_plugin_name(self) -> str:
        return self.config.name

    def get_api_url(self) -> str:
        return self.remote.api_url

    def get_plugin_file(self) -> str:
        return self.config.plugin_file

    def get_capabilities(self) -> str:
        """Permission tag the host must check before showing or submitting the license form."""
        return self.config.capabilities

    # Helpers

    def _form_value(self, form: Mapping[str, Any], option: str, *aliases: str) -> Any:
        for name in (self.get_option_key(option), option) + aliases:
            if name in form and form[name] is not None:
                return form[name]
        return None

    @staticmethod
    def _clean_key(value: Any) -> str:
        if value is None:
            return ""
        value = re.sub(r"<[^>]*>", "", str(value))
        return " ".join(value.split())

    @staticmethod
    def _is_truthy(value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if value is None:
            return False
        return str(value).strip().lower() in TRUTHY

    @staticmethod
    def _outcome(code: str, message: str, level: NoticeLevel, record: LicenseRecord) -> FormOutcome:
        return FormOutcome(
            notice=Notice(code=code, message=message, level=level),
            state=record.state,
            license_key=record.license_key,
        )
