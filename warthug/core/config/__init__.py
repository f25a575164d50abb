from warthug.core.config.config import Config, Environment

__all__ = ["Config", "Environment"]
