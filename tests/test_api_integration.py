"""
Integration tests for the REST API against an in-memory SQLite database.
"""

import asyncio
from datetime import datetime
from unittest.mock import patch

from fastapi.testclient import TestClient

from nation_grid.api import main
from nation_grid.core.alea_prng import AleaPRNG
from nation_grid.core.territory import Coordinate, InsufficientFrontier, TerritoryAllocator, is_connected
from nation_grid.db.connection import Database
from nation_grid.db.queries import NationQueries


class ApiTestBase:
    """Fresh database and client per test."""

    def setup_method(self):
        self.database = Database()
        self.database.initialize("sqlite://")
        self.db_patcher = patch.object(main, "db", self.database)
        self.db_patcher.start()
        self.client = TestClient(main.app)

    def teardown_method(self):
        self.db_patcher.stop()

    def signup(self, client=None, username="alice", country="Alicia", capital="Alice City"):
        client = client or self.client
        response = client.post(
            "/api/auth/signup",
            json={
                "username": username,
                "password": "hunter2",
                "country_name": country,
                "capital_city_name": capital,
            },
        )
        assert response.status_code == 200, response.text
        return response.json()

    def grant(self, country_id, **balances):
        with self.database.get_session() as session:
            NationQueries(session).update_resources(country_id, balances)


class TestServiceEndpoints(ApiTestBase):
    def test_root(self):
        response = self.client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_health(self):
        response = self.client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "connected"}


class TestSignup(ApiTestBase):
    """Test nation founding."""

    def test_signup_creates_user_and_country(self):
        data = self.signup()
        assert data["user"]["username"] == "alice"
        assert "password_hash" not in data["user"]
        assert data["country"]["name"] == "Alicia"
        assert data["country"]["capital_city_name"] == "Alice City"
        assert data["country"]["territory_seed"]

    def test_signup_grants_starting_resources(self):
        self.signup()
        resources = self.client.get("/api/resources").json()
        assert resources["money"] == 100000
        assert resources["population"] == 500000
        assert resources["manpower"] == 20000
        assert resources["stability"] == 100
        assert resources["economic_strength"] == 50
        assert resources["materials"] == 0

    def test_signup_allocates_connected_territory(self):
        country_id = self.signup()["country"]["id"]
        territories = self.client.get("/api/territories").json()

        assert len(territories) == 100
        assert {t["country_id"] for t in territories} == {country_id}
        cells = {Coordinate(t["x"], t["y"]) for t in territories}
        assert len(cells) == 100
        assert is_connected(cells)

    def test_capital_is_the_origin_cell(self):
        country = self.signup()["country"]
        territories = self.client.get("/api/territories").json()
        capitals = [t for t in territories if t["city_name"]]

        assert len(capitals) == 1
        assert capitals[0]["city_name"] == "Alice City"

        # An empty world regrows the same region from the stored seed
        regrown = TerritoryAllocator(prng=AleaPRNG(country["territory_seed"])).allocate(country["id"], 100)
        assert (capitals[0]["x"], capitals[0]["y"]) == (regrown[0].x, regrown[0].y)
        assert {(t["x"], t["y"]) for t in territories} == {(c.x, c.y) for c in regrown}

    def test_nations_do_not_overlap(self):
        self.signup(TestClient(main.app), username="alice")
        self.signup(TestClient(main.app), username="bob", country="Bobland", capital="Bobville")
        self.signup(username="carol", country="Carolia", capital="Carolton")

        territories = self.client.get("/api/territories").json()
        assert len(territories) == 300
        assert len({(t["x"], t["y"]) for t in territories}) == 300

        by_country = {}
        for t in territories:
            by_country.setdefault(t["country_id"], set()).add(Coordinate(t["x"], t["y"]))
        assert len(by_country) == 3
        assert all(len(cells) == 100 and is_connected(cells) for cells in by_country.values())

    def test_cell_collision_returns_conflict(self):
        """Two signups racing for the same cells: the unique (x, y) constraint wins."""
        with patch.object(NationQueries, "claimed_coordinates", return_value=set()), \
                patch.object(main, "scaled_origin_window", return_value=1):
            self.signup()
            response = TestClient(main.app).post(
                "/api/auth/signup",
                json={
                    "username": "bob",
                    "password": "hunter2",
                    "country_name": "Bobland",
                    "capital_city_name": "Bobville",
                },
            )

        assert response.status_code == 409
        assert "try again" in response.json()["detail"]

        # Bob's account went down with the failed transaction
        login = TestClient(main.app).post("/api/auth/login", json={"username": "bob", "password": "hunter2"})
        assert login.status_code == 401
        assert len(self.client.get("/api/territories").json()) == 100

    def test_password_hashing_runs_off_the_event_loop(self):
        seen = []
        real_hash = main.get_password_hash

        def recording_hash(password):
            try:
                asyncio.get_running_loop()
                seen.append("event loop")
            except RuntimeError:
                seen.append("worker thread")
            return real_hash(password)

        with patch.object(main, "get_password_hash", recording_hash):
            self.signup()

        assert seen == ["worker thread"]

    def test_missing_fields(self):
        response = self.client.post("/api/auth/signup", json={"username": "alice", "password": "x"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Missing required fields"

    def test_duplicate_username(self):
        self.signup()
        response = TestClient(main.app).post(
            "/api/auth/signup",
            json={
                "username": "alice",
                "password": "other",
                "country_name": "Again",
                "capital_city_name": "Again City",
            },
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Username already exists"

    def test_allocation_failure_rolls_back(self):
        with patch.object(
            main, "allocate_starting_territory", side_effect=InsufficientFrontier("c", 100, 7)
        ):
            response = self.client.post(
                "/api/auth/signup",
                json={
                    "username": "alice",
                    "password": "hunter2",
                    "country_name": "Alicia",
                    "capital_city_name": "Alice City",
                },
            )
        assert response.status_code == 409
        assert "try again" in response.json()["detail"]

        # Nothing persisted, so the name is still free
        self.signup()

    def test_signup_logs_the_player_in(self):
        self.signup()
        assert self.client.get("/api/country").status_code == 200


class TestBroadcasts(ApiTestBase):
    """Writes push invalidation messages to connected clients."""

    def test_writes_are_announced(self):
        # Startup would otherwise connect to the configured database
        with patch.object(self.database, "initialize"), TestClient(main.app) as client:
            with client.websocket_connect("/ws") as socket:
                country_id = self.signup(client)["country"]["id"]
                assert socket.receive_json() == {"type": "territory_update", "country_id": country_id}

                self.grant(country_id, materials=1000)
                territory_id = client.get("/api/territories").json()[0]["id"]
                response = client.post(
                    "/api/structures", json={"territory_id": territory_id, "structure_type": "bank"}
                )
                assert response.status_code == 200
                assert socket.receive_json() == {"type": "structure_update", "country_id": country_id}
                assert socket.receive_json() == {"type": "resource_update", "country_id": country_id}

                response = client.post("/api/units", json={"unit_type": "infantry", "quantity": 1})
                assert response.status_code == 200
                assert socket.receive_json() == {"type": "unit_update", "country_id": country_id}
                assert socket.receive_json() == {"type": "resource_update", "country_id": country_id}


class TestSession(ApiTestBase):
    """Test login and logout."""

    def test_unauthenticated_requests_rejected(self):
        for path in ("/api/country", "/api/countries", "/api/resources", "/api/territories",
                     "/api/structures", "/api/units", "/api/research", "/api/trades", "/api/events"):
            assert self.client.get(path).status_code == 401, path

    def test_login_and_logout(self):
        self.signup()
        self.client.post("/api/auth/logout")
        assert self.client.get("/api/country").status_code == 401

        response = self.client.post("/api/auth/login", json={"username": "alice", "password": "hunter2"})
        assert response.status_code == 200
        assert response.json()["user"]["username"] == "alice"
        assert self.client.get("/api/country").json()["name"] == "Alicia"

    def test_password_check_runs_off_the_event_loop(self):
        self.signup()
        seen = []
        real_verify = main.verify_password

        def recording_verify(password, password_hash):
            try:
                asyncio.get_running_loop()
                seen.append("event loop")
            except RuntimeError:
                seen.append("worker thread")
            return real_verify(password, password_hash)

        with patch.object(main, "verify_password", recording_verify):
            response = TestClient(main.app).post("/api/auth/login", json={"username": "alice", "password": "hunter2"})

        assert response.status_code == 200
        assert seen == ["worker thread"]

    def test_logout_response(self):
        assert self.client.post("/api/auth/logout").json() == {"success": True}

    def test_bad_credentials(self):
        self.signup()
        client = TestClient(main.app)
        assert client.post("/api/auth/login", json={"username": "alice", "password": "nope"}).status_code == 401
        assert client.post("/api/auth/login", json={"username": "nobody", "password": "x"}).status_code == 401
        assert client.post("/api/auth/login", json={"username": "alice"}).status_code == 400

    def test_countries_lists_everyone(self):
        self.signup(TestClient(main.app), username="bob", country="Bobland", capital="Bobville")
        self.signup()
        names = {c["name"] for c in self.client.get("/api/countries").json()}
        assert names == {"Alicia", "Bobland"}


class TestStructures(ApiTestBase):
    """Test building structures."""

    def setup_method(self):
        super().setup_method()
        self.country_id = self.signup()["country"]["id"]
        self.territory_id = self.client.get("/api/territories").json()[0]["id"]

    def build(self, structure_type="bank", territory_id=None):
        return self.client.post(
            "/api/structures",
            json={"territory_id": territory_id or self.territory_id, "structure_type": structure_type},
        )

    def test_insufficient_materials(self):
        response = self.build()
        assert response.status_code == 400
        assert response.json()["detail"] == "Insufficient materials"

    def test_build_deducts_cost(self):
        self.grant(self.country_id, materials=1000)
        response = self.build()
        assert response.status_code == 200
        assert response.json()["type"] == "bank"
        assert response.json()["level"] == 1

        resources = self.client.get("/api/resources").json()
        assert resources["materials"] == 900
        assert resources["money"] == 95000

        structures = self.client.get("/api/structures").json()
        assert [s["territory_id"] for s in structures] == [self.territory_id]

    def test_unknown_structure_type(self):
        response = self.build("castle")
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid structure type"

    def test_foreign_territory_rejected(self):
        other = TestClient(main.app)
        self.signup(other, username="bob", country="Bobland", capital="Bobville")
        foreign = [t for t in self.client.get("/api/territories").json() if t["country_id"] != self.country_id]

        response = self.build(territory_id=foreign[0]["id"])
        assert response.status_code == 403
        assert self.build(territory_id="missing").status_code == 403


class TestUnits(ApiTestBase):
    """Test training units."""

    def setup_method(self):
        super().setup_method()
        self.country_id = self.signup()["country"]["id"]

    def train(self, unit_type, quantity=1):
        return self.client.post("/api/units", json={"unit_type": unit_type, "quantity": quantity})

    def test_train_infantry(self):
        response = self.train("infantry", 2)
        assert response.status_code == 200
        assert response.json()["quantity"] == 2
        assert response.json()["movement_speed"] == 1

        resources = self.client.get("/api/resources").json()
        assert resources["manpower"] == 19800
        assert resources["money"] == 98000
        assert len(self.client.get("/api/units").json()) == 1

    def test_tank_speed(self):
        self.grant(self.country_id, materials=100, oil=100)
        response = self.train("tank")
        assert response.status_code == 200
        assert response.json()["movement_speed"] == 2

    def test_insufficient_money(self):
        response = self.train("missile", 2)
        assert response.status_code == 400
        assert response.json()["detail"] == "Insufficient money"

    def test_unknown_unit_type(self):
        assert self.train("dragon").json()["detail"] == "Invalid unit type"

    def test_quantity_must_be_positive(self):
        assert self.train("infantry", 0).status_code == 422


class TestResearch(ApiTestBase):
    """Test researching technologies."""

    def setup_method(self):
        super().setup_method()
        self.country_id = self.signup()["country"]["id"]

    def research(self, technology, branch="military"):
        return self.client.post("/api/research", json={"branch": branch, "technology": technology})

    def test_insufficient_points(self):
        response = self.research("basic_infantry")
        assert response.status_code == 400
        assert response.json()["detail"] == "Insufficient research points"

    def test_research_completes_immediately(self):
        self.grant(self.country_id, research_points=500)
        response = self.research("basic_infantry")
        assert response.status_code == 200
        data = response.json()
        assert data["level"] == 1
        assert data["progress"] == 100
        assert data["in_progress"] is False

        assert self.client.get("/api/resources").json()["research_points"] == 400
        assert [r["technology"] for r in self.client.get("/api/research").json()] == ["basic_infantry"]

    def test_invalid_branch(self):
        assert self.research("democracy", branch="magic").status_code == 400

    def test_invalid_technology(self):
        assert self.research("alchemy").json()["detail"] == "Invalid technology"


class TestTrades(ApiTestBase):
    """Test trade proposals."""

    def setup_method(self):
        super().setup_method()
        self.country_id = self.signup()["country"]["id"]
        self.other_id = self.signup(TestClient(main.app), username="bob", country="Bobland",
                                    capital="Bobville")["country"]["id"]

    def propose(self, to_country_id, offer=None, request=None):
        return self.client.post(
            "/api/trades",
            json={"to_country_id": to_country_id, "offer": offer or {"oil": 10}, "request": request or {"food": 5}},
        )

    def test_propose_trade(self):
        response = self.propose(self.other_id)
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "pending"
        assert data["offer_resources"] == {"oil": 10}
        assert data["request_resources"] == {"food": 5}

        trades = self.client.get("/api/trades").json()
        assert [t["to_country_id"] for t in trades] == [self.other_id]

    def test_self_trade_rejected(self):
        assert self.propose(self.country_id).status_code == 400

    def test_unknown_country(self):
        assert self.propose("missing").status_code == 404

    def test_invalid_resource(self):
        assert self.propose(self.other_id, offer={"gold": 1}).status_code == 400
        assert self.propose(self.other_id, offer={"oil": -1}).status_code == 400


class TestEvents(ApiTestBase):
    def test_events_newest_first(self):
        country_id = self.signup()["country"]["id"]
        with self.database.get_session() as session:
            queries = NationQueries(session)
            older = queries.create_event(country_id, "insurgency", "low", "Unrest in the provinces")
            newer = queries.create_event(country_id, "coup", "high", "Generals seize the palace")
            older.created_at = datetime(2026, 1, 1)
            newer.created_at = datetime(2026, 1, 2)

        events = self.client.get("/api/events").json()
        assert [e["type"] for e in events] == ["coup", "insurgency"]
