"""
nation-grid: backend for a nation-management strategy game on a shared grid.
"""

__version__ = "0.1.0"
