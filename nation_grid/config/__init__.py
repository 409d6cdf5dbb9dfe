"""
Configuration for the nation-grid server.
"""

from .config import Settings, settings

__all__ = ['Settings', 'settings']
