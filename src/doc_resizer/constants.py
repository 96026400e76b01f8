from __future__ import annotations

from pathlib import Path

DEFAULT_CONFIG_PATH = Path("config.toml")
ENV_PREFIX = "DOCRESIZE_"

# 1 cm expressed in points; kept at this precision for output parity.
POINTS_PER_CM = 28.3465
SIZE_UNIT = "PT"

DEFAULT_BASE_URL = "https://docs.googleapis.com/v1"

__all__ = ["DEFAULT_CONFIG_PATH", "ENV_PREFIX", "POINTS_PER_CM", "SIZE_UNIT", "DEFAULT_BASE_URL"]
