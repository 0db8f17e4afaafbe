import logging
from typing import Any, Dict, Optional

from license_manager.engine import LicenseEngine
from license_manager.fingerprint import get_system_info
from license_manager.models import LicenseState, PluginInformation, UpdateInfo

logger = logging.getLogger(__name__)


class UpdateAdvisory:
    """
    Answers whether a newer release is available for a licensed installation.

    Read-only with respect to license state: an update check never re-syncs
    or rewrites the activation status.
    """

    def __init__(self, engine: LicenseEngine):
        self.engine = engine
        self.config = engine.config

    async def evaluate(self, current_version: Optional[str] = None) -> Optional[UpdateInfo]:
        record = self.engine.get_record()
        if not record.license_key or record.state != LicenseState.ACTIVATED:
            return None

        context = self.engine.context()
        if current_version:
            context = context.model_copy(update={"version": current_version})

        result = await self.engine.remote.check_update(record.license_key, context)
        if result.error:
            logger.info("Update check skipped: %s", result.error.message)
            return None

        if result.update:
            logger.info("Update available: %s -> %s", context.version, result.update.version)
        return result.update

    async def update_package(self, current_version: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Describe an available update in the shape the host updater expects."""
        update = await self.evaluate(current_version)
        if update is None:
            return None

        return {
            "id": update.id or "",
            "slug": update.slug or self.config.effective_plugin_slug,
            "plugin": self.config.effective_plugin_name,
            "new_version": update.version,
            "url": update.url,
            "tested": update.tested,
            "package": update.download_url,
            "upgrade_notice": update.upgrade_notice,
        }

    async def information_request(self, slug: str) -> Optional[PluginInformation]:
        """Plugin details for the host's "view details" screen."""
        if slug != self.config.effective_plugin_slug:
            return None

        license_key = self.engine.get_record().license_key
        if not license_key:
            return None

        result = await self.engine.remote.information(license_key)
        if result.error or result.info is None:
            return None

        return result.info.model_copy(update={"system_info": get_system_info()})
