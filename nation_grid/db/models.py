"""Database models for nation-grid game state."""

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship
import uuid
from datetime import datetime

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """Player account."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    username = Column(String(100), nullable=False, unique=True)
    password_hash = Column(String(128), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    country = relationship("Country", back_populates="user", uselist=False, cascade="all, delete-orphan")


class Country(Base):
    """A player's nation."""

    __tablename__ = "countries"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    capital_city_name = Column(String(255), nullable=False)
    territory_seed = Column(String(50))  # Seed the starting territory was grown from
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="country")
    resources = relationship("Resources", back_populates="country", uselist=False, cascade="all, delete-orphan")
    territories = relationship("Territory", back_populates="country", cascade="all, delete-orphan")
    units = relationship("Unit", back_populates="country", cascade="all, delete-orphan")
    research = relationship("Research", back_populates="country", cascade="all, delete-orphan")
    events = relationship("Event", back_populates="country", cascade="all, delete-orphan")


class Resources(Base):
    """Stockpiles and national statistics, one row per country."""

    __tablename__ = "resources"

    id = Column(String(36), primary_key=True, default=_new_id)
    country_id = Column(String(36), ForeignKey("countries.id", ondelete="CASCADE"), nullable=False, unique=True)

    money = Column(Float, nullable=False, default=100000)
    population = Column(Integer, nullable=False, default=500000)
    research_points = Column(Float, nullable=False, default=0)
    manpower = Column(Integer, nullable=False, default=20000)
    stability = Column(Float, nullable=False, default=100)
    oil = Column(Float, nullable=False, default=0)
    minerals = Column(Float, nullable=False, default=0)
    materials = Column(Float, nullable=False, default=0)
    food = Column(Float, nullable=False, default=0)
    uranium = Column(Float, nullable=False, default=0)
    economic_strength = Column(Float, nullable=False, default=50)
    last_updated = Column(DateTime, nullable=False, default=datetime.utcnow)

    country = relationship("Country", back_populates="resources")


class Territory(Base):
    """One owned grid cell."""

    __tablename__ = "territories"
    # A cell belongs to at most one nation
    __table_args__ = (UniqueConstraint("x", "y", name="uq_territories_xy"),)

    id = Column(String(36), primary_key=True, default=_new_id)
    country_id = Column(String(36), ForeignKey("countries.id", ondelete="CASCADE"), nullable=False)
    x = Column(Integer, nullable=False)
    y = Column(Integer, nullable=False)
    city_name = Column(String(255))  # Capital only

    country = relationship("Country", back_populates="territories")
    structures = relationship("Structure", back_populates="territory", cascade="all, delete-orphan")


class Structure(Base):
    """Building placed on a territory."""

    __tablename__ = "structures"

    id = Column(String(36), primary_key=True, default=_new_id)
    territory_id = Column(String(36), ForeignKey("territories.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(50), nullable=False)
    level = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    territory = relationship("Territory", back_populates="structures")


class Unit(Base):
    """Stack of military units."""

    __tablename__ = "units"

    id = Column(String(36), primary_key=True, default=_new_id)
    country_id = Column(String(36), ForeignKey("countries.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(50), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    current_territory_id = Column(String(36), ForeignKey("territories.id", ondelete="SET NULL"), nullable=True)
    target_territory_id = Column(String(36), ForeignKey("territories.id", ondelete="SET NULL"), nullable=True)
    movement_progress = Column(Float, nullable=False, default=0)
    movement_speed = Column(Float, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    country = relationship("Country", back_populates="units")


class Research(Base):
    """Researched or in-progress technology."""

    __tablename__ = "research"

    id = Column(String(36), primary_key=True, default=_new_id)
    country_id = Column(String(36), ForeignKey("countries.id", ondelete="CASCADE"), nullable=False)
    branch = Column(String(50), nullable=False)  # military, economic, political
    technology = Column(String(100), nullable=False)
    level = Column(Integer, nullable=False, default=0)
    in_progress = Column(Boolean, nullable=False, default=False)
    progress = Column(Float, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    country = relationship("Country", back_populates="research")


class Trade(Base):
    """Trade proposal between two countries."""

    __tablename__ = "trades"

    id = Column(String(36), primary_key=True, default=_new_id)
    from_country_id = Column(String(36), ForeignKey("countries.id", ondelete="CASCADE"), nullable=False)
    to_country_id = Column(String(36), ForeignKey("countries.id", ondelete="CASCADE"), nullable=False)
    offer_resources = Column(JSON, nullable=False)
    request_resources = Column(JSON, nullable=False)
    status = Column(String(20), nullable=False, default="pending")  # pending, accepted, rejected, cancelled
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class Event(Base):
    """Something that happened to a country (coup, insurgency, crash)."""

    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=_new_id)
    country_id = Column(String(36), ForeignKey("countries.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(50), nullable=False)
    severity = Column(String(20), nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    country = relationship("Country", back_populates="events")
