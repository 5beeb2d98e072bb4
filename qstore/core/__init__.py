"""QStore 核心模块"""

from .version import APP_VERSION as __version__

__all__ = ["__version__"]
