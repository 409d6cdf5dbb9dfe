"""
Core game logic: territory allocation, random source and the cost catalog.
"""

from .alea_prng import AleaPRNG
from .territory import (
    AllocationError,
    AllocatorOptions,
    Coordinate,
    InsufficientFrontier,
    TerritoryAllocator,
    TerritoryCell,
    is_connected,
    scaled_origin_window,
)
from .catalog import CatalogError, InsufficientResources, UnknownCatalogEntry

__all__ = ['AleaPRNG', 'AllocationError', 'AllocatorOptions', 'Coordinate',
           'InsufficientFrontier', 'TerritoryAllocator', 'TerritoryCell',
           'is_connected', 'scaled_origin_window',
           'CatalogError', 'InsufficientResources', 'UnknownCatalogEntry']
