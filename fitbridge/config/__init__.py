# Initializes config package (imports Settings instance)

from .config import Settings, settings

__all__ = ["Settings", "settings"]
