from .loader import ChainSettings, load_settings

__all__ = ["ChainSettings", "load_settings"]
