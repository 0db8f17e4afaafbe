"""
Tests for the product-scoped host fingerprint.
"""

from license_manager.config import LicenseConfig
from license_manager.engine import LicenseEngine
from license_manager.fingerprint import get_host_fingerprint, get_system_info


def test_fingerprint_is_stable_per_product():
    assert get_host_fingerprint("prod-a") == get_host_fingerprint("prod-a")
    assert len(get_host_fingerprint("prod-a")) == 64


def test_fingerprint_differs_between_products():
    assert get_host_fingerprint("prod-a") != get_host_fingerprint("prod-b")


def test_engine_defaults_host_to_product_fingerprint(config_values, options, remote):
    del config_values["host"]
    engine = LicenseEngine(LicenseConfig(**config_values), options, remote=remote)

    assert engine.host == get_host_fingerprint("prod-uuid-1")


def test_system_info_has_compatibility_fields():
    info = get_system_info()

    assert set(info) == {"os_platform", "architecture", "python_version", "total_memory_gb"}
