"""
Configuration module for the GeoIP enrichment worker
"""

import os
from pathlib import Path
from typing import List

def env_list(key: str, default: str) -> List[str]:
    """Get a comma-separated list from an environment variable"""
    return [x.strip() for x in os.getenv(key, default).split(",") if x.strip()]

def _read_version_from_repo(default: str = "dev") -> str:
    try:
        version_file = Path(__file__).resolve().parents[1] / "VERSION"
        v = version_file.read_text(encoding="utf-8").strip()
        if v:
            return v
    except OSError:
        pass
    return os.getenv("APP_VERSION", default)

APP_NAME = "evs-geoip"
APP_VERSION = _read_version_from_repo()

# GeoIP database configuration
GEOIP_DB = os.getenv("GEOIP_DB", "GeoLite2-City.mmdb")
GEOIP_ASN_DB = os.getenv("GEOIP_ASN_DB", "GeoLite2-ASN.mmdb")

# GeoIP refresh configuration
GEOIP_UPDATE_PERIOD = float(os.getenv("GEOIP_UPDATE_PERIOD", "86400"))
GEOIP_RETRY_PERIOD = float(os.getenv("GEOIP_RETRY_PERIOD", "600"))
GEOIPUPDATE_CONFIG = os.getenv("GEOIPUPDATE_CONFIG", "GeoIP.conf")
GEOIPUPDATE_DIR = os.getenv("GEOIPUPDATE_DIR", ".")

# Event bus bindings
INPUT = os.getenv("INPUT", "cyberprobe")
OUTPUTS = env_list("OUTPUT", "geoip")

# Queue configuration
QUEUE_MAX_DEPTH = int(os.getenv("QUEUE_MAX_DEPTH", "10000"))

# Output sinks
OUTPUT_DIR = os.getenv("OUTPUT_DIR", "/data/out")

# HTTP configuration
APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
APP_PORT = int(os.getenv("APP_PORT", "8088"))
API_PREFIX = "/v1"

# Logging configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "json")
