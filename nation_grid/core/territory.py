"""
Territory allocation for newly founded nations.

A nation starts as a connected block of grid cells grown outward from a
random origin. Growth keeps a frontier of reserved cells bordering the
region and claims one of them at random on each step, which yields an
irregular blob rather than a diamond or a straight line.
"""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Set

import structlog
from pydantic import BaseModel, ConfigDict, Field

from ..utils import random as shared_random

logger = structlog.get_logger()


@dataclass(frozen=True)
class Coordinate:
    """A cell on the unbounded integer lattice."""

    x: int
    y: int

    def neighbors(self) -> List["Coordinate"]:
        """Four-directional neighbours (right, left, down, up)."""
        return [
            Coordinate(self.x + 1, self.y),
            Coordinate(self.x - 1, self.y),
            Coordinate(self.x, self.y + 1),
            Coordinate(self.x, self.y - 1),
        ]


class TerritoryCell(BaseModel):
    """One allocated cell bound to its owning country."""

    model_config = ConfigDict(frozen=True)

    owner_id: str = Field(description="Owning country identifier")
    x: int = Field(description="Grid column")
    y: int = Field(description="Grid row")
    city_name: Optional[str] = Field(default=None, description="Set on the capital cell only")

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.x, self.y)


class AllocationError(Exception):
    """Base class for territory allocation failures."""


class InsufficientFrontier(AllocationError):
    """Growth could not reach the requested size without touching claimed cells."""

    def __init__(self, owner_id: str, target_count: int, allocated: int):
        self.owner_id = owner_id
        self.target_count = target_count
        self.allocated = allocated
        super().__init__(
            f"Could only allocate {allocated} of {target_count} cells for {owner_id}"
        )


class AllocatorOptions(BaseModel):
    """Territory allocation parameters."""

    target_count: int = Field(default=100, ge=0, description="Cells per new nation")
    origin_window: int = Field(default=50, gt=0, description="Origins are drawn from [0, window) on both axes")
    max_origin_attempts: int = Field(default=100, gt=0, description="Origin resamples before giving up")


ClaimCheck = Callable[[Coordinate], bool]


def scaled_origin_window(base: int, claimed_count: int) -> int:
    """
    Origin window side that keeps at least half of the window unclaimed.

    Args:
        base: Minimum window side
        claimed_count: Cells already owned across the world

    Returns:
        Window side length
    """
    return max(base, math.ceil(math.sqrt(2 * claimed_count)))


class TerritoryAllocator:
    """Grows connected territories on the world grid."""

    def __init__(
        self,
        options: Optional[AllocatorOptions] = None,
        prng=None,
        is_claimed: Optional[ClaimCheck] = None,
    ):
        """
        Initialize the allocator.

        Args:
            options: Allocation parameters
            prng: Random source exposing random(), randrange() and choice();
                defaults to the shared generator
            is_claimed: Optional predicate reporting cells owned by other
                nations. Without it only the current run is collision-free.
        """
        self.options = options or AllocatorOptions()
        self.prng = prng or shared_random.get_prng()
        self.is_claimed = is_claimed

    def allocate(
        self,
        owner_id: str,
        target_count: Optional[int] = None,
        origin_window: Optional[int] = None,
    ) -> List[TerritoryCell]:
        """
        Allocate a connected territory.

        Args:
            owner_id: Country identifier stamped on every cell
            target_count: Exact number of cells; defaults to options.target_count
            origin_window: Override for options.origin_window

        Returns:
            Cells in claim order; the first one is the origin

        Raises:
            ValueError: target_count is negative
            InsufficientFrontier: growth stalled against claimed cells
        """
        if target_count is None:
            target_count = self.options.target_count
        if target_count < 0:
            raise ValueError(f"target_count must be non-negative, got {target_count}")
        if target_count == 0:
            return []

        window = origin_window or self.options.origin_window
        claimed: Set[Coordinate] = set()
        origin = self._pick_origin(owner_id, target_count, window)

        region = [origin]
        claimed.add(origin)
        frontier: List[Coordinate] = []
        self._reserve_neighbors(origin, claimed, frontier)

        while len(region) < target_count and frontier:
            # Swap-remove; frontier order carries no meaning
            index = self.prng.randrange(len(frontier))
            frontier[index], frontier[-1] = frontier[-1], frontier[index]
            cell = frontier.pop()
            region.append(cell)
            self._reserve_neighbors(cell, claimed, frontier)

        if len(region) < target_count:
            logger.warning(
                "Territory growth stalled",
                owner_id=owner_id,
                target_count=target_count,
                allocated=len(region),
            )
            raise InsufficientFrontier(owner_id, target_count, len(region))

        logger.debug(
            "Territory allocated",
            owner_id=owner_id,
            cells=len(region),
            origin=(origin.x, origin.y),
        )
        return [TerritoryCell(owner_id=owner_id, x=c.x, y=c.y) for c in region]

    def _pick_origin(self, owner_id: str, target_count: int, window: int) -> Coordinate:
        for _ in range(self.options.max_origin_attempts):
            origin = Coordinate(self.prng.randrange(window), self.prng.randrange(window))
            if not self._externally_claimed(origin):
                return origin
        raise InsufficientFrontier(owner_id, target_count, 0)

    def _reserve_neighbors(
        self, cell: Coordinate, claimed: Set[Coordinate], frontier: List[Coordinate]
    ) -> None:
        for neighbor in cell.neighbors():
            if neighbor in claimed:
                continue
            # Externally owned cells are marked too, so each is checked once
            claimed.add(neighbor)
            if not self._externally_claimed(neighbor):
                frontier.append(neighbor)

    def _externally_claimed(self, coordinate: Coordinate) -> bool:
        return self.is_claimed is not None and self.is_claimed(coordinate)


def is_connected(coordinates: Iterable[Coordinate]) -> bool:
    """
    Check 4-directional connectivity of a set of cells.

    An empty set counts as connected.
    """
    cells = set(coordinates)
    if not cells:
        return True

    start = next(iter(cells))
    seen = {start}
    queue = deque([start])
    while queue:
        current = queue.popleft()
        for neighbor in current.neighbors():
            if neighbor in cells and neighbor not in seen:
                seen.add(neighbor)
                queue.append(neighbor)

    return len(seen) == len(cells)
