import hashlib
import platform
import uuid

import psutil


def get_host_fingerprint(product_uuid: str) -> str:
    """
    Host identifier for activation requests, scoped to one product.

    Two products installed on the same machine report different hosts, so a
    seat freed for one never matches the other. The license instance id is
    generated separately and never derived from this value.
    """
    machine = "|".join((
        format(uuid.getnode(), "012x"),
        str(psutil.cpu_count(logical=True)),
        platform.system(),
        platform.machine(),
    ))
    return hashlib.sha256(f"{product_uuid}:{machine}".encode()).hexdigest()


def get_system_info() -> dict:
    # Only what helps support judge "requires" / "requires_php" compatibility
    return {
        "os_platform": platform.system(),
        "architecture": platform.machine(),
        "python_version": platform.python_version(),
        "total_memory_gb": round(psutil.virtual_memory().total / (1024**3), 2),
    }
