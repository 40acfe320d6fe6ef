"""
Integration Tests - Sales API
"""
from datetime import datetime

import pytest
from httpx import ASGITransport, AsyncClient

from src.serving.api import create_api_app


@pytest.fixture
async def client(initialized_db):
    app = create_api_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def seed(test_db):
    async def _seed(sales):
        test_db.add_all(sales)
        await test_db.commit()
    return _seed


class TestListSales:
    """GET /api/sales"""

    async def test_empty_store(self, client):
        response = await client.get("/api/sales")

        assert response.status_code == 200
        assert response.json() == {
            "data": [],
            "meta": {"total": 0, "page": 1, "limit": 10, "totalPages": 0},
        }

    async def test_response_shape(self, client, seed, sale_factory):
        await seed([sale_factory(customer_name="Jane Doe", price_per_unit=12.5, tags=["organic"])])

        response = await client.get("/api/sales")

        body = response.json()
        record = body["data"][0]
        assert record["customerName"] == "Jane Doe"
        assert record["pricePerUnit"] == 12.5
        assert record["tags"] == ["organic"]
        assert "paymentMethod" in record
        assert "rowHash" not in record
        assert body["meta"] == {"total": 1, "page": 1, "limit": 10, "totalPages": 1}

    async def test_search_by_customer_name(self, client, seed, sale_factory):
        await seed([sale_factory(customer_name="Jane Doe")] + [sale_factory() for _ in range(9)])

        response = await client.get("/api/sales", params={"search": "Jane", "page": 1, "limit": 10})

        body = response.json()
        assert len(body["data"]) == 1
        assert body["meta"]["total"] == 1

    async def test_search_is_case_insensitive_and_matches_phone(self, client, seed, sale_factory):
        await seed([
            sale_factory(customer_name="JANE DOE"),
            sale_factory(phone="9990001111"),
            sale_factory(),
        ])

        by_name = (await client.get("/api/sales", params={"search": "jane"})).json()
        by_phone = (await client.get("/api/sales", params={"search": "000111"})).json()

        assert by_name["meta"]["total"] == 1
        assert by_phone["meta"]["total"] == 1
        assert by_phone["data"][0]["phone"] == "9990001111"

    async def test_search_wildcards_are_literal(self, client, seed, sale_factory):
        await seed([sale_factory(customer_name="100% Cotton Co"), sale_factory()])

        body = (await client.get("/api/sales", params={"search": "%"})).json()

        assert body["meta"]["total"] == 1

    async def test_repeated_region_is_or(self, client, seed, sale_factory):
        await seed([
            sale_factory(region="North"),
            sale_factory(region="South"),
            sale_factory(region="East"),
            sale_factory(region="West"),
        ])

        response = await client.get("/api/sales?region=North&region=South")

        regions = {record["region"] for record in response.json()["data"]}
        assert regions == {"North", "South"}

    async def test_filter_groups_are_and(self, client, seed, sale_factory):
        await seed([
            sale_factory(region="North", gender="Female", payment_method="UPI"),
            sale_factory(region="North", gender="Male", payment_method="UPI"),
            sale_factory(region="South", gender="Female", payment_method="UPI"),
            sale_factory(region="North", gender="Female", payment_method="Cash"),
        ])

        response = await client.get(
            "/api/sales", params={"region": "North", "gender": "Female", "paymentMethod": "UPI"}
        )

        assert response.json()["meta"]["total"] == 1

    async def test_category_filter(self, client, seed, sale_factory):
        await seed([sale_factory(category="Beauty"), sale_factory(category="Clothing")])

        body = (await client.get("/api/sales", params={"category": "Beauty"})).json()

        assert [r["category"] for r in body["data"]] == ["Beauty"]

    async def test_age_range_is_inclusive(self, client, seed, sale_factory):
        await seed([sale_factory(age=age) for age in (25, 29, 30, 35, 40, 41, 60)])

        response = await client.get("/api/sales", params={"minAge": 30, "maxAge": 40})

        ages = sorted(record["age"] for record in response.json()["data"])
        assert ages == [30, 35, 40]

    async def test_tags_match_any(self, client, seed, sale_factory):
        await seed([
            sale_factory(tags=["organic", "skincare"]),
            sale_factory(tags=["wireless"]),
            sale_factory(tags=["gadgets", "wireless"]),
            sale_factory(tags=[]),
        ])

        response = await client.get("/api/sales?tags=organic&tags=gadgets")

        assert response.json()["meta"]["total"] == 2

    async def test_date_range_is_inclusive(self, client, seed, sale_factory):
        await seed([
            sale_factory(date=datetime(2024, 2, 29, 23, 0)),
            sale_factory(date=datetime(2024, 3, 1, 0, 0)),
            sale_factory(date=datetime(2024, 3, 31, 18, 0)),
            sale_factory(date=datetime(2024, 4, 1, 0, 0, 1)),
        ])

        response = await client.get("/api/sales", params={"startDate": "2024-03-01", "endDate": "2024-03-31"})

        assert response.json()["meta"]["total"] == 2

    async def test_sort_by_quantity_ascending(self, client, seed, sale_factory):
        await seed([sale_factory(quantity=q) for q in (5, 1, 3, 3, 9, 2)])

        response = await client.get("/api/sales", params={"sortBy": "quantity", "sortOrder": "asc"})

        quantities = [record["quantity"] for record in response.json()["data"]]
        assert quantities == sorted(quantities)

    async def test_default_sort_is_newest_first(self, client, seed, sale_factory):
        await seed([sale_factory(date=datetime(2024, m, 1)) for m in (3, 1, 2)])

        response = await client.get("/api/sales")

        dates = [record["date"] for record in response.json()["data"]]
        assert dates == sorted(dates, reverse=True)

    async def test_sort_by_customer_name(self, client, seed, sale_factory):
        await seed([sale_factory(customer_name=name) for name in ("Carol", "alice", "Bob")])

        response = await client.get("/api/sales", params={"sortBy": "customerName", "sortOrder": "asc"})

        names = [record["customerName"] for record in response.json()["data"]]
        assert names == sorted(names)

    async def test_unknown_sort_is_accepted(self, client, seed, sale_factory):
        await seed([sale_factory() for _ in range(3)])

        response = await client.get("/api/sales", params={"sortBy": "price"})

        assert response.status_code == 200
        assert response.json()["meta"]["total"] == 3

    async def test_pages_cover_all_records_once(self, client, seed, sale_factory):
        # duplicate dates force the tiebreaker
        await seed([sale_factory(date=datetime(2024, 1, 1 + i % 3)) for i in range(10)])

        first = (await client.get("/api/sales", params={"limit": 3})).json()
        total_pages = first["meta"]["totalPages"]
        assert first["meta"]["total"] == 10
        assert total_pages == 4

        seen = []
        for page in range(1, total_pages + 1):
            body = (await client.get("/api/sales", params={"limit": 3, "page": page})).json()
            seen.extend(record["id"] for record in body["data"])

        assert len(seen) == 10
        assert len(set(seen)) == 10

    async def test_last_page_is_short(self, client, seed, sale_factory):
        await seed([sale_factory() for _ in range(7)])

        body = (await client.get("/api/sales", params={"limit": 5, "page": 2})).json()

        assert len(body["data"]) == 2
        assert body["meta"] == {"total": 7, "page": 2, "limit": 5, "totalPages": 2}

    async def test_missing_values_are_null(self, client, seed, sale_factory):
        await seed([sale_factory(discount=None, age=None)])

        record = (await client.get("/api/sales")).json()["data"][0]

        assert record["discount"] is None
        assert record["age"] is None


class TestListSalesErrors:
    """Error envelopes"""

    GENERIC_ERROR = {"error": "Internal Server Error"}

    async def test_invalid_sort_order(self, client):
        response = await client.get("/api/sales", params={"sortOrder": "sideways"})

        assert response.status_code == 500
        assert response.json() == self.GENERIC_ERROR

    async def test_invalid_date(self, client):
        response = await client.get("/api/sales", params={"startDate": "not-a-date"})

        assert response.status_code == 500
        assert response.json() == self.GENERIC_ERROR

    async def test_invalid_page(self, client):
        response = await client.get("/api/sales", params={"page": 0})

        assert response.status_code == 500
        assert response.json() == self.GENERIC_ERROR

    async def test_non_numeric_age_does_not_echo_input(self, client):
        response = await client.get("/api/sales", params={"minAge": "abc"})

        assert response.status_code == 500
        assert response.json() == self.GENERIC_ERROR
        assert "abc" not in response.text

    async def test_large_limit_is_served(self, client, seed, sale_factory):
        await seed([sale_factory() for _ in range(150)])

        response = await client.get("/api/sales", params={"limit": 200})

        body = response.json()
        assert response.status_code == 200
        assert len(body["data"]) == 150
        assert body["meta"] == {"total": 150, "page": 1, "limit": 200, "totalPages": 1}

    async def test_storage_failure_is_generic_500(self, client, monkeypatch):
        async def broken(session, query):
            raise ConnectionError("could not connect to server at 10.0.0.5")

        monkeypatch.setattr("src.serving.api.routes.sales.fetch_sales_page", broken)

        response = await client.get("/api/sales")

        assert response.status_code == 500
        assert response.json() == {"error": "Internal Server Error"}

    async def test_uninitialized_database_is_500(self):
        app = create_api_app()
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.get("/api/sales")

        assert response.status_code == 500
        assert response.json() == {"error": "Internal Server Error"}


class TestHealth:
    """Health endpoints"""

    async def test_live(self, client):
        response = await client.get("/api/health/live")

        assert response.status_code == 200
        assert response.json() == {"status": "alive"}

    async def test_ready(self, client):
        response = await client.get("/api/health/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "ready"}

    async def test_health_reports_database(self, client):
        body = (await client.get("/api/health")).json()

        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "healthy"

    async def test_request_id_header(self, client):
        response = await client.get("/api/health/live", headers={"X-Request-ID": "abc-123"})

        assert response.headers["X-Request-ID"] == "abc-123"
