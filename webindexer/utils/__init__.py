"""
Utility modules for the web indexer.
"""

from .config import Config, ConfigManager, validate_config

__all__ = ['Config', 'ConfigManager', 'validate_config']
