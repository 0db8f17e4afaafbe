from typing import Optional

from fastapi import APIRouter, HTTPException

from license_manager.engine import LicenseEngine
from license_manager.models import (
    FormOutcome,
    HealthCheckResponse,
    LicenseFormRequest,
    LicenseStatusResponse,
    PluginInformation,
    UpdateCheckResponse,
)
from license_manager.updates import UpdateAdvisory


def create_router(engine: LicenseEngine, advisory: Optional[UpdateAdvisory] = None) -> APIRouter:
    """
    Build the license endpoints a host application mounts.

    The engine is passed in explicitly; the router holds no global state.
    """
    advisory = advisory or UpdateAdvisory(engine)
    router = APIRouter(prefix="/license", tags=["license"])

    @router.post("", response_model=FormOutcome)
    async def submit_license(request: LicenseFormRequest):
        """
        Submit the license form.

        Activates a new key, re-verifies an already active one, or
        deactivates when the deactivate flag is set.
        """
        return await engine.submit_license_form(
            {"license_key": request.licenseKey, "deactivate": request.deactivate}
        )

    @router.post("/resync", response_model=FormOutcome)
    async def resync_license():
        """Re-read the activation status from the license server."""
        return await engine.resync_status()

    @router.get("/status", response_model=LicenseStatusResponse)
    async def get_license_status():
        """Current license status from local state only."""
        return engine.status_summary()

    @router.get("/update", response_model=UpdateCheckResponse)
    async def check_update():
        update = await advisory.evaluate()
        return {
            "updateAvailable": update is not None,
            "currentVersion": engine.config.version,
            "update": update,
        }

    @router.get("/info/{slug}", response_model=PluginInformation)
    async def plugin_information(slug: str):
        info = await advisory.information_request(slug)
        if info is None:
            raise HTTPException(status_code=404, detail="No plugin information available")
        return info

    @router.get("/health", response_model=HealthCheckResponse)
    async def health_check():
        return {
            "status": "healthy",
            "service": "license-manager",
            "version": engine.config.version,
            "instanceId": engine.get_record().instance_id,
            "host": engine.host,
        }

    return router
