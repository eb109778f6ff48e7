from sentinelid.core.config.manager import HIBP_API_KEY_ENV, ConfigManager, ConfigPaths
from sentinelid.core.config.models import SentinelConfig

__all__ = ["HIBP_API_KEY_ENV", "ConfigManager", "ConfigPaths", "SentinelConfig"]
