"""
Query helpers for nation-grid game state.

Thin wrappers around the ORM so request handlers read as game operations
rather than query plumbing.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import structlog
from sqlalchemy.orm import Session

from ..core.catalog import EVENT_TYPES, TRADE_STATUSES
from .models import (
    Country,
    Event,
    Research,
    Resources,
    Structure,
    Territory,
    Trade,
    Unit,
    User,
)

logger = structlog.get_logger()


class NationQueries:
    """
    Storage operations for players and their nations.

    Covers accounts, countries, resources, territories, structures, units,
    research, trades and events. Every method works inside the session the
    helper was created with; committing is left to the caller.
    """

    def __init__(self, session: Session):
        """Initialize with database session."""
        self.session = session

    # Users

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self.session.query(User).filter(User.username == username).first()

    def create_user(self, username: str, password_hash: str) -> User:
        user = User(username=username, password_hash=password_hash)
        self.session.add(user)
        self.session.flush()
        return user

    # Countries

    def get_country(self, country_id: str) -> Optional[Country]:
        return self.session.get(Country, country_id)

    def get_country_by_user_id(self, user_id: str) -> Optional[Country]:
        return self.session.query(Country).filter(Country.user_id == user_id).first()

    def create_country(
        self, user_id: str, name: str, capital_city_name: str, territory_seed: Optional[str] = None
    ) -> Country:
        country = Country(
            user_id=user_id,
            name=name,
            capital_city_name=capital_city_name,
            territory_seed=territory_seed,
        )
        self.session.add(country)
        self.session.flush()
        return country

    def list_countries(self) -> List[Country]:
        return self.session.query(Country).order_by(Country.created_at).all()

    # Resources

    def get_resources(self, country_id: str) -> Optional[Resources]:
        return self.session.query(Resources).filter(Resources.country_id == country_id).first()

    def create_resources(self, country_id: str, **overrides: Any) -> Resources:
        resources = Resources(country_id=country_id, **overrides)
        self.session.add(resources)
        self.session.flush()
        return resources

    def update_resources(self, country_id: str, updates: Dict[str, float]) -> Resources:
        """Apply balance changes and stamp last_updated."""
        resources = self.get_resources(country_id)
        if resources is None:
            raise LookupError(f"No resources for country {country_id}")
        for field, value in updates.items():
            setattr(resources, field, value)
        resources.last_updated = datetime.utcnow()
        self.session.flush()
        return resources

    # Territories

    def get_territory(self, territory_id: str) -> Optional[Territory]:
        return self.session.get(Territory, territory_id)

    def list_territories(self, country_id: Optional[str] = None) -> List[Territory]:
        query = self.session.query(Territory)
        if country_id is not None:
            query = query.filter(Territory.country_id == country_id)
        return query.all()

    def create_territories(self, cells: Iterable[Any]) -> List[Territory]:
        """
        Persist allocated cells.

        Args:
            cells: Objects with owner_id, x, y and city_name attributes

        Returns:
            Created Territory rows in input order
        """
        rows = [
            Territory(country_id=cell.owner_id, x=cell.x, y=cell.y, city_name=cell.city_name)
            for cell in cells
        ]
        self.session.add_all(rows)
        self.session.flush()
        return rows

    def claimed_coordinates(self) -> Set[Tuple[int, int]]:
        """Every (x, y) owned by any country."""
        return {(x, y) for x, y in self.session.query(Territory.x, Territory.y)}

    # Structures

    def list_structures(self, country_id: str) -> List[Structure]:
        return (
            self.session.query(Structure)
            .join(Territory, Structure.territory_id == Territory.id)
            .filter(Territory.country_id == country_id)
            .all()
        )

    def create_structure(self, territory_id: str, structure_type: str) -> Structure:
        structure = Structure(territory_id=territory_id, type=structure_type)
        self.session.add(structure)
        self.session.flush()
        return structure

    # Units

    def list_units(self, country_id: str) -> List[Unit]:
        return self.session.query(Unit).filter(Unit.country_id == country_id).all()

    def create_unit(self, country_id: str, unit_type: str, quantity: int, movement_speed: float) -> Unit:
        unit = Unit(
            country_id=country_id,
            type=unit_type,
            quantity=quantity,
            movement_speed=movement_speed,
        )
        self.session.add(unit)
        self.session.flush()
        return unit

    # Research

    def list_research(self, country_id: str) -> List[Research]:
        return self.session.query(Research).filter(Research.country_id == country_id).all()

    def create_research(self, country_id: str, branch: str, technology: str, **fields: Any) -> Research:
        research = Research(country_id=country_id, branch=branch, technology=technology, **fields)
        self.session.add(research)
        self.session.flush()
        return research

    # Trades

    def list_trades(self, country_id: str) -> List[Trade]:
        """Outgoing trade proposals."""
        return (
            self.session.query(Trade)
            .filter(Trade.from_country_id == country_id)
            .order_by(Trade.created_at.desc())
            .all()
        )

    def create_trade(
        self,
        from_country_id: str,
        to_country_id: str,
        offer: Dict[str, float],
        request: Dict[str, float],
        status: str = "pending",
    ) -> Trade:
        if status not in TRADE_STATUSES:
            raise ValueError(f"Unknown trade status: {status}")

        trade = Trade(
            from_country_id=from_country_id,
            to_country_id=to_country_id,
            offer_resources=offer,
            request_resources=request,
            status=status,
        )
        self.session.add(trade)
        self.session.flush()
        return trade

    # Events

    def list_events(self, country_id: str, limit: int = 50) -> List[Event]:
        return (
            self.session.query(Event)
            .filter(Event.country_id == country_id)
            .order_by(Event.created_at.desc())
            .limit(limit)
            .all()
        )

    def create_event(self, country_id: str, event_type: str, severity: str, message: str) -> Event:
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type}")

        event = Event(country_id=country_id, type=event_type, severity=severity, message=message)
        self.session.add(event)
        self.session.flush()
        logger.info("Event recorded", country_id=country_id, type=event_type, severity=severity)
        return event


def create_query_helper(session: Session) -> NationQueries:
    """Create a query helper for the given session."""
    return NationQueries(session)
