from gbp_access.config.settings import EngineSettings, ConfigurationError

__all__ = ["EngineSettings", "ConfigurationError"]
