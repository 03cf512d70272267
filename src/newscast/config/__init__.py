"""Configuration package for the newscast pipeline.

Usage:
    from newscast.config import config, NewscastConfig

    # Access domain configs
    config.paths.db_path
    config.tts.max_chunk_chars
    config.operational.max_concurrent_jobs
"""

from .base import NewscastConfig
from .paths import PathsConfig
from .api_keys import APIKeysConfig
from .tts import TTSConfig
from .operational import OperationalConfig
from .branding import BrandingConfig

# Global singleton used by entry points; library code takes config explicitly
config = NewscastConfig()

__all__ = [
    "config",
    "NewscastConfig",
    "PathsConfig",
    "APIKeysConfig",
    "TTSConfig",
    "OperationalConfig",
    "BrandingConfig",
]
