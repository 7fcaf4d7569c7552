"""
Test fixtures for the SalesTax pipeline.

This module provides pytest fixtures for testing the pipeline, including a
fake rate service served through httpx.MockTransport.
"""

import asyncio
from datetime import date
from typing import Any, Dict, Generator, List, Optional, Tuple

import httpx
import pytest
from fastapi.testclient import TestClient

from salestax.api import create_app
from salestax.etl.rate_lookup import RateLookupClient

RATE_SERVICE_URL = "https://rates.test/api/v1/rates"

AUSTIN_RATES = [
    {"name": "TEXAS STATE", "type": "STATE", "rate": "0.0625"},
    {"name": "TRAVIS COUNTY", "type": "COUNTY", "rate": "0.0050"},
    {"name": "AUSTIN", "type": "CITY", "rate": "0.0200"},
]

HOUSTON_RATES = [
    {"name": "TEXAS STATE", "type": "STATE", "rate": "0.0625"},
    {"name": "HOUSTON", "type": "CITY", "rate": "0.0100"},
    {"name": "HOUSTON MTA", "type": "SPD", "rate": "0.0100"},
]

SAMPLE_CSV = (
    "client,date,charge,street address,city,State,zip code\n"
    "John,02/22/2025,100.00,123 Main St,Austin,TX,78701\n"
    "Jane,07/04/2025,200.00,900 Bagby St,Houston,TX,77002\n"
).encode("utf-8")

SAMPLE_CSV_NO_DATE = (
    "client,charge,street address,city,State,zip code\n"
    "John,100.00,123 Main St,Austin,TX,78701\n"
).encode("utf-8")


class FakeRateService:
    """In-memory stand-in for the rate service.

    Responses are chosen by the requested street. Unknown streets get the
    Austin rates. Every request is recorded.
    """

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.requests: List[httpx.Request] = []
        self.rates: Dict[str, List[Dict[str, str]]] = {"900 Bagby St": HOUSTON_RATES}
        self.statuses: Dict[str, Tuple[int, str]] = {}
        self.bodies: Dict[str, Any] = {}
        self.echoes: Dict[str, Dict[str, str]] = {}
        self.in_flight = 0
        self.max_in_flight = 0

    def fail(self, street: str, status: int = 500, body: str = "internal error") -> None:
        self.statuses[street] = (status, body)

    def respond(self, street: str, body: Any) -> None:
        self.bodies[street] = body

    def build_body(self, params: httpx.QueryParams) -> Dict[str, Any]:
        street = params["street"]
        echo = {
            "street": params["street"],
            "city": params["city"],
            "state": params["state"],
            "zip": params["zipcode"],
        }
        echo.update(self.echoes.get(street, {}))
        return {
            "returnCode": 0,
            "address": echo,
            "rates": self.rates.get(street, AUSTIN_RATES),
        }

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            street = request.url.params["street"]
            if street in self.statuses:
                status, text = self.statuses[street]
                return httpx.Response(status, text=text)
            if street in self.bodies:
                body = self.bodies[street]
                if isinstance(body, str):
                    return httpx.Response(200, text=body)
                return httpx.Response(200, json=body)
            return httpx.Response(200, json=self.build_body(request.url.params))
        finally:
            self.in_flight -= 1

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


def make_client(service: FakeRateService, **kwargs) -> RateLookupClient:
    """Build a lookup client wired to a fake rate service."""
    return RateLookupClient(
        base_url=RATE_SERVICE_URL,
        api_key="test-key",
        client_id="test-client",
        transport=service.transport(),
        **kwargs
    )


@pytest.fixture
def rate_service() -> FakeRateService:
    """Create a fake rate service."""
    return FakeRateService()


@pytest.fixture
def lookup_client(rate_service) -> RateLookupClient:
    """Create a lookup client backed by the fake rate service."""
    return make_client(rate_service)


@pytest.fixture
def today() -> date:
    """Fixed date used for the default rate period."""
    return date(2025, 5, 15)


@pytest.fixture
def sample_csv() -> bytes:
    """Sample upload with a date column."""
    return SAMPLE_CSV


@pytest.fixture
def test_client(lookup_client) -> Generator[TestClient, None, None]:
    """Create a FastAPI test client."""
    app = create_app(lookup_client=lookup_client)
    with TestClient(app) as client:
        yield client
