"""
Static game catalog: what things cost and how fast units move.

Costs are plain mappings from resource name to amount. Their key order is
the order in which affordability is checked, so the first shortfall
reported to a player is stable.
"""

from typing import Dict, Mapping

STRUCTURE_TYPES = (
    "bank",
    "farm",
    "political_office",
    "city",
    "factory",
    "military_base",
    "oil_rig",
    "mine",
    "research_center",
    "missile_silo",
    "rocket_silo",
    "nuclear_power_plant",
)

UNIT_TYPES = ("infantry", "special_forces", "tank", "apc", "aircraft", "missile")

RESEARCH_BRANCHES = ("military", "economic", "political")

TRADE_STATUSES = ("pending", "accepted", "rejected", "cancelled")

EVENT_TYPES = ("coup", "insurgency", "economic_crash")

TRADABLE_RESOURCES = (
    "money",
    "research_points",
    "manpower",
    "oil",
    "minerals",
    "materials",
    "food",
    "uranium",
)

STRUCTURE_COSTS: Dict[str, Dict[str, float]] = {
    "bank": {"materials": 100, "money": 5000},
    "farm": {"materials": 50, "money": 2000, "food": 20},
    "political_office": {"materials": 80, "money": 8000},
    "city": {"materials": 200, "money": 15000, "food": 100},
    "factory": {"materials": 150, "money": 10000, "oil": 50},
    "military_base": {"materials": 180, "money": 12000},
    "oil_rig": {"materials": 120, "money": 8000},
    "mine": {"materials": 100, "money": 6000},
    "research_center": {"materials": 200, "money": 20000},
    "missile_silo": {"materials": 300, "money": 50000, "uranium": 10},
    "rocket_silo": {"materials": 350, "money": 60000, "uranium": 15},
    "nuclear_power_plant": {"materials": 500, "money": 100000, "uranium": 50},
}

UNIT_COSTS: Dict[str, Dict[str, float]] = {
    "infantry": {"manpower": 100, "money": 1000},
    "special_forces": {"manpower": 50, "money": 5000},
    "tank": {"manpower": 20, "money": 15000, "materials": 50, "oil": 20},
    "apc": {"manpower": 15, "money": 10000, "materials": 30, "oil": 15},
    "aircraft": {"manpower": 10, "money": 50000, "materials": 100, "oil": 50},
    "missile": {"manpower": 5, "money": 100000, "materials": 200, "uranium": 10},
}

UNIT_SPEEDS = {"aircraft": 5.0, "tank": 2.0}
DEFAULT_UNIT_SPEED = 1.0

RESEARCH_COSTS: Dict[str, float] = {
    # military
    "basic_infantry": 100,
    "special_forces": 300,
    "tanks": 500,
    "aircraft": 800,
    "advanced_weapons": 400,
    "tactical_doctrine": 600,
    "nuclear_weapons": 2000,
    # economic
    "banking_system": 150,
    "industrial_efficiency": 250,
    "trade_routes": 200,
    "economic_policy": 350,
    "advanced_manufacturing": 500,
    # political
    "basic_governance": 100,
    "democracy": 300,
    "propaganda": 200,
    "intelligence_agency": 400,
    "diplomacy": 350,
}


class CatalogError(Exception):
    """Base class for catalog lookups and purchase checks."""


class UnknownCatalogEntry(CatalogError):
    """Requested structure, unit or technology does not exist."""

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"Invalid {kind}")


class InsufficientResources(CatalogError):
    """A balance is below the cost of a purchase."""

    def __init__(self, resource: str, required: float, available: float):
        self.resource = resource
        self.required = required
        self.available = available
        super().__init__(f"Insufficient {resource.replace('_', ' ')}")


def structure_cost(structure_type: str) -> Dict[str, float]:
    """Cost of building one structure."""
    try:
        return dict(STRUCTURE_COSTS[structure_type])
    except KeyError:
        raise UnknownCatalogEntry("structure type", structure_type) from None


def unit_cost(unit_type: str, quantity: int = 1) -> Dict[str, float]:
    """Total cost of training `quantity` units of a type."""
    try:
        per_unit = UNIT_COSTS[unit_type]
    except KeyError:
        raise UnknownCatalogEntry("unit type", unit_type) from None
    return {resource: amount * quantity for resource, amount in per_unit.items()}


def unit_speed(unit_type: str) -> float:
    return UNIT_SPEEDS.get(unit_type, DEFAULT_UNIT_SPEED)


def research_cost(technology: str) -> Dict[str, float]:
    """Cost of researching a technology, in research points."""
    try:
        return {"research_points": RESEARCH_COSTS[technology]}
    except KeyError:
        raise UnknownCatalogEntry("technology", technology) from None


def check_affordable(resources: Mapping[str, float], cost: Mapping[str, float]) -> None:
    """
    Raise InsufficientResources for the first resource that falls short.

    Args:
        resources: Current balances keyed by resource name
        cost: Amounts required, in check order
    """
    for resource, amount in cost.items():
        available = resources.get(resource, 0)
        if amount and available < amount:
            raise InsufficientResources(resource, amount, available)


def apply_cost(resources: Mapping[str, float], cost: Mapping[str, float]) -> Dict[str, float]:
    """Return the balances touched by `cost` after deducting it."""
    return {resource: resources.get(resource, 0) - amount for resource, amount in cost.items()}
