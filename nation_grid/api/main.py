"""FastAPI main application."""

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from starlette.middleware.sessions import SessionMiddleware
from typing import Any, Dict, List, Optional
import logging
import structlog
from datetime import datetime

from ..config import settings
from ..db.connection import db
from ..db.models import Resources
from ..db.queries import NationQueries
from ..core.alea_prng import AleaPRNG
from ..core.catalog import (
    RESEARCH_BRANCHES,
    TRADABLE_RESOURCES,
    CatalogError,
    apply_cost,
    check_affordable,
    research_cost,
    structure_cost,
    unit_cost,
    unit_speed,
)
from ..core.territory import (
    AllocatorOptions,
    InsufficientFrontier,
    TerritoryAllocator,
    TerritoryCell,
    scaled_origin_window,
)
from ..utils.random import new_seed
from .auth import (
    get_current_user_id,
    get_password_hash,
    login_session,
    password_too_long,
    verify_password,
)
from .websocket import manager, router as websocket_router

# Configure logging
logging.basicConfig(format="%(message)s", level=settings.log_level.upper())

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer()
        if settings.log_format == "json"
        else structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

# Initialize FastAPI app
app = FastAPI(
    title="Nation Grid API",
    description="Nation-management strategy game on a shared world grid",
    version="0.1.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.allowed_origins.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret,
    max_age=settings.session_max_age_seconds,
    same_site="lax",
    https_only=settings.session_https_only,
)

app.include_router(websocket_router)

RESOURCE_FIELDS = (
    "money",
    "population",
    "research_points",
    "manpower",
    "stability",
    "oil",
    "minerals",
    "materials",
    "food",
    "uranium",
    "economic_strength",
)


# Request/Response models
class SignupRequest(BaseModel):
    """New player with their nation."""

    username: Optional[str] = None
    password: Optional[str] = None
    country_name: Optional[str] = None
    capital_city_name: Optional[str] = None


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class StructureRequest(BaseModel):
    territory_id: str
    structure_type: str


class UnitRequest(BaseModel):
    unit_type: str
    quantity: int = Field(1, ge=1, description="Units to train")


class ResearchRequest(BaseModel):
    branch: str
    technology: str


class TradeRequest(BaseModel):
    to_country_id: str
    offer: Dict[str, float] = Field(default_factory=dict, description="Resources offered")
    request: Dict[str, float] = Field(default_factory=dict, description="Resources requested")


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    created_at: datetime


class CountryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    name: str
    capital_city_name: str
    territory_seed: Optional[str] = None
    created_at: datetime


class SignupResponse(BaseModel):
    user: UserOut
    country: CountryOut


class LoginResponse(BaseModel):
    user: UserOut


class ResourcesOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    country_id: str
    money: float
    population: int
    research_points: float
    manpower: int
    stability: float
    oil: float
    minerals: float
    materials: float
    food: float
    uranium: float
    economic_strength: float
    last_updated: datetime


class TerritoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    country_id: str
    x: int
    y: int
    city_name: Optional[str] = None


class StructureOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    territory_id: str
    type: str
    level: int
    created_at: datetime


class UnitOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    country_id: str
    type: str
    quantity: int
    current_territory_id: Optional[str] = None
    target_territory_id: Optional[str] = None
    movement_progress: float
    movement_speed: float
    created_at: datetime


class ResearchOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    country_id: str
    branch: str
    technology: str
    level: int
    in_progress: bool
    progress: float
    updated_at: datetime


class TradeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    from_country_id: str
    to_country_id: str
    offer_resources: Dict[str, float]
    request_resources: Dict[str, float]
    status: str
    created_at: datetime


class EventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    country_id: str
    type: str
    severity: str
    message: str
    created_at: datetime


# Event handlers
@app.on_event("startup")
async def startup_event():
    """Initialize database on startup."""
    logger.info("Starting Nation Grid API")
    db.initialize()
    logger.info("API startup complete")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("Shutting down Nation Grid API")


# Helpers
def resource_balances(resources: Resources) -> Dict[str, Any]:
    return {field: getattr(resources, field) for field in RESOURCE_FIELDS}


def require_country(queries: NationQueries, user_id: str):
    country = queries.get_country_by_user_id(user_id)
    if not country:
        raise HTTPException(status_code=404, detail="Country not found")
    return country


def require_resources(queries: NationQueries, country_id: str) -> Resources:
    resources = queries.get_resources(country_id)
    if not resources:
        raise HTTPException(status_code=404, detail="Resources not found")
    return resources


def allocate_starting_territory(
    queries: NationQueries, country_id: str, seed: str, capital_city_name: str
) -> List[TerritoryCell]:
    """
    Grow a new nation's territory around the existing world.

    Growth is seeded from the country's stored seed and avoids every
    persisted cell. Stalled attempts retry from a new origin drawn from the
    same generator.

    Raises:
        InsufficientFrontier: every attempt stalled
    """
    claimed = queries.claimed_coordinates()
    allocator = TerritoryAllocator(
        options=AllocatorOptions(
            target_count=settings.territory_count,
            origin_window=settings.origin_window,
            max_origin_attempts=settings.max_origin_attempts,
        ),
        prng=AleaPRNG(seed),
        is_claimed=lambda coordinate: (coordinate.x, coordinate.y) in claimed,
    )
    window = scaled_origin_window(settings.origin_window, len(claimed))

    for attempt in range(1, settings.allocation_attempts + 1):
        try:
            cells = allocator.allocate(country_id, origin_window=window)
            break
        except InsufficientFrontier as e:
            logger.warning(
                "Territory allocation attempt failed",
                country_id=country_id,
                attempt=attempt,
                allocated=e.allocated,
            )
            if attempt == settings.allocation_attempts:
                raise

    if cells:
        cells[0] = cells[0].model_copy(update={"city_name": capital_city_name})
    return cells


# API endpoints
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Nation Grid API",
        "version": "0.1.0",
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    try:
        with db.get_session() as session:
            session.execute(text("SELECT 1"))

        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        logger.error("Health check failed", error=str(e))
        raise HTTPException(status_code=503, detail="Service unhealthy")


@app.post("/api/auth/signup", response_model=SignupResponse)
async def signup(payload: SignupRequest, request: Request):
    """
    Register a player and found their nation.

    Creates the account, the country with starting resources, and a
    connected starting territory whose first cell is the capital.
    """
    if not (payload.username and payload.password and payload.country_name and payload.capital_city_name):
        raise HTTPException(status_code=400, detail="Missing required fields")
    if password_too_long(payload.password):
        raise HTTPException(status_code=400, detail="Password too long")

    # bcrypt is slow on purpose; keep it off the event loop
    password_hash = await run_in_threadpool(get_password_hash, payload.password)

    try:
        with db.get_session() as session:
            queries = NationQueries(session)
            if queries.get_user_by_username(payload.username):
                raise HTTPException(status_code=400, detail="Username already exists")

            user = queries.create_user(payload.username, password_hash)
            seed = new_seed()
            country = queries.create_country(
                user_id=user.id,
                name=payload.country_name,
                capital_city_name=payload.capital_city_name,
                territory_seed=seed,
            )
            queries.create_resources(country.id)

            cells = allocate_starting_territory(queries, country.id, seed, payload.capital_city_name)
            queries.create_territories(cells)

            response = SignupResponse(
                user=UserOut.model_validate(user),
                country=CountryOut.model_validate(country),
            )
    except InsufficientFrontier as e:
        logger.error("Could not place new nation", username=payload.username, error=str(e))
        raise HTTPException(status_code=409, detail="No room for a new nation here, please try again")
    except IntegrityError as e:
        logger.warning("Signup lost a race with another player", username=payload.username, error=str(e))
        raise HTTPException(status_code=409, detail="Signup conflicted with another player, please try again")

    login_session(request, response.user.id)
    logger.info(
        "Nation founded",
        user_id=response.user.id,
        country_id=response.country.id,
        cells=len(cells),
    )
    await manager.notify("territory_update", response.country.id)
    return response


@app.post("/api/auth/login", response_model=LoginResponse)
async def login(payload: LoginRequest, request: Request):
    """Start a session for an existing player."""
    if not payload.username or not payload.password:
        raise HTTPException(status_code=400, detail="Missing credentials")

    with db.get_session() as session:
        user = NationQueries(session).get_user_by_username(payload.username)
        if not user or password_too_long(payload.password):
            raise HTTPException(status_code=401, detail="Invalid credentials")
        password_hash = user.password_hash
        response = LoginResponse(user=UserOut.model_validate(user))

    if not await run_in_threadpool(verify_password, payload.password, password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    login_session(request, response.user.id)
    logger.info("Player logged in", user_id=response.user.id)
    return response


@app.post("/api/auth/logout")
async def logout(request: Request):
    """End the current session."""
    request.session.clear()
    return {"success": True}


@app.get("/api/country", response_model=CountryOut)
async def get_own_country(user_id: str = Depends(get_current_user_id)):
    """The logged-in player's country."""
    with db.get_session() as session:
        country = require_country(NationQueries(session), user_id)
        return CountryOut.model_validate(country)


@app.get("/api/countries", response_model=List[CountryOut])
async def list_countries(user_id: str = Depends(get_current_user_id)):
    """All countries in the world."""
    with db.get_session() as session:
        return [CountryOut.model_validate(c) for c in NationQueries(session).list_countries()]


@app.get("/api/resources", response_model=ResourcesOut)
async def get_resources(user_id: str = Depends(get_current_user_id)):
    with db.get_session() as session:
        queries = NationQueries(session)
        country = require_country(queries, user_id)
        return ResourcesOut.model_validate(require_resources(queries, country.id))


@app.get("/api/territories", response_model=List[TerritoryOut])
async def list_territories(user_id: str = Depends(get_current_user_id)):
    """Every owned cell across all countries, for map rendering."""
    with db.get_session() as session:
        return [TerritoryOut.model_validate(t) for t in NationQueries(session).list_territories()]


@app.get("/api/structures", response_model=List[StructureOut])
async def list_structures(user_id: str = Depends(get_current_user_id)):
    with db.get_session() as session:
        queries = NationQueries(session)
        country = require_country(queries, user_id)
        return [StructureOut.model_validate(s) for s in queries.list_structures(country.id)]


@app.post("/api/structures", response_model=StructureOut)
async def build_structure(payload: StructureRequest, user_id: str = Depends(get_current_user_id)):
    """Build a structure on one of the player's own territories."""
    with db.get_session() as session:
        queries = NationQueries(session)
        country = require_country(queries, user_id)

        territory = queries.get_territory(payload.territory_id)
        if not territory or territory.country_id != country.id:
            raise HTTPException(status_code=403, detail="Invalid territory")

        resources = require_resources(queries, country.id)
        try:
            cost = structure_cost(payload.structure_type)
            check_affordable(resource_balances(resources), cost)
        except CatalogError as e:
            raise HTTPException(status_code=400, detail=str(e))

        structure = queries.create_structure(territory.id, payload.structure_type)
        queries.update_resources(country.id, apply_cost(resource_balances(resources), cost))
        response = StructureOut.model_validate(structure)

    logger.info("Structure built", country_id=country.id, type=payload.structure_type)
    await manager.notify("structure_update", country.id)
    await manager.notify("resource_update", country.id)
    return response


@app.get("/api/units", response_model=List[UnitOut])
async def list_units(user_id: str = Depends(get_current_user_id)):
    with db.get_session() as session:
        queries = NationQueries(session)
        country = require_country(queries, user_id)
        return [UnitOut.model_validate(u) for u in queries.list_units(country.id)]


@app.post("/api/units", response_model=UnitOut)
async def train_units(payload: UnitRequest, user_id: str = Depends(get_current_user_id)):
    """Train a batch of units, paying per-unit costs times quantity."""
    with db.get_session() as session:
        queries = NationQueries(session)
        country = require_country(queries, user_id)
        resources = require_resources(queries, country.id)

        try:
            cost = unit_cost(payload.unit_type, payload.quantity)
            check_affordable(resource_balances(resources), cost)
        except CatalogError as e:
            raise HTTPException(status_code=400, detail=str(e))

        unit = queries.create_unit(
            country.id,
            payload.unit_type,
            payload.quantity,
            movement_speed=unit_speed(payload.unit_type),
        )
        queries.update_resources(country.id, apply_cost(resource_balances(resources), cost))
        response = UnitOut.model_validate(unit)

    logger.info("Units trained", country_id=country.id, type=payload.unit_type, quantity=payload.quantity)
    await manager.notify("unit_update", country.id)
    await manager.notify("resource_update", country.id)
    return response


@app.get("/api/research", response_model=List[ResearchOut])
async def list_research(user_id: str = Depends(get_current_user_id)):
    with db.get_session() as session:
        queries = NationQueries(session)
        country = require_country(queries, user_id)
        return [ResearchOut.model_validate(r) for r in queries.list_research(country.id)]


@app.post("/api/research", response_model=ResearchOut)
async def research_technology(payload: ResearchRequest, user_id: str = Depends(get_current_user_id)):
    """Research a technology immediately, spending research points."""
    with db.get_session() as session:
        queries = NationQueries(session)
        country = require_country(queries, user_id)
        resources = require_resources(queries, country.id)

        if payload.branch not in RESEARCH_BRANCHES:
            raise HTTPException(status_code=400, detail="Invalid research branch")
        try:
            cost = research_cost(payload.technology)
            check_affordable(resource_balances(resources), cost)
        except CatalogError as e:
            raise HTTPException(status_code=400, detail=str(e))

        research = queries.create_research(
            country.id,
            payload.branch,
            payload.technology,
            level=1,
            in_progress=False,
            progress=100,
        )
        queries.update_resources(country.id, apply_cost(resource_balances(resources), cost))
        response = ResearchOut.model_validate(research)

    logger.info("Technology researched", country_id=country.id, technology=payload.technology)
    await manager.notify("resource_update", country.id)
    return response


@app.get("/api/trades", response_model=List[TradeOut])
async def list_trades(user_id: str = Depends(get_current_user_id)):
    """Trade proposals sent by the player's country."""
    with db.get_session() as session:
        queries = NationQueries(session)
        country = require_country(queries, user_id)
        return [TradeOut.model_validate(t) for t in queries.list_trades(country.id)]


@app.post("/api/trades", response_model=TradeOut)
async def propose_trade(payload: TradeRequest, user_id: str = Depends(get_current_user_id)):
    """Record a pending trade proposal. Proposals are never settled here."""
    for resource, amount in list(payload.offer.items()) + list(payload.request.items()):
        if resource not in TRADABLE_RESOURCES or amount < 0:
            raise HTTPException(status_code=400, detail="Invalid trade resources")

    with db.get_session() as session:
        queries = NationQueries(session)
        country = require_country(queries, user_id)

        if payload.to_country_id == country.id:
            raise HTTPException(status_code=400, detail="Cannot trade with yourself")
        if not queries.get_country(payload.to_country_id):
            raise HTTPException(status_code=404, detail="Target country not found")

        trade = queries.create_trade(country.id, payload.to_country_id, payload.offer, payload.request)
        response = TradeOut.model_validate(trade)

    logger.info("Trade proposed", from_country_id=country.id, to_country_id=payload.to_country_id)
    return response


@app.get("/api/events", response_model=List[EventOut])
async def list_events(user_id: str = Depends(get_current_user_id)):
    """Most recent events for the player's country, newest first."""
    with db.get_session() as session:
        queries = NationQueries(session)
        country = require_country(queries, user_id)
        return [EventOut.model_validate(e) for e in queries.list_events(country.id)]


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
