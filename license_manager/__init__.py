"""
License lifecycle client.

Activates, deactivates and verifies a product license key against a remote
licensing API, keeps the local license state in a durable option store, and
tells the host application when a licensed update is available.
"""

from license_manager.config import ConfigurationError, LicenseConfig
from license_manager.database import LicenseStore, OptionStore, create_store, migrate_license_options
from license_manager.engine import LicenseEngine
from license_manager.models import FormOutcome, LicenseState, Notice, NoticeLevel, UpdateInfo
from license_manager.remote import RemoteClient
from license_manager.updates import UpdateAdvisory

__version__ = "1.0.0"

__all__ = [
    "ConfigurationError",
    "FormOutcome",
    "LicenseConfig",
    "LicenseEngine",
    "LicenseState",
    "LicenseStore",
    "Notice",
    "NoticeLevel",
    "OptionStore",
    "RemoteClient",
    "UpdateAdvisory",
    "UpdateInfo",
    "create_store",
    "migrate_license_options",
]
