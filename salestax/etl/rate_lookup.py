"""
Sales tax rate lookup client.

This module queries the government rate-lookup service for the jurisdictions
taxing an address during a given quarter, and converts the service's
string-typed rates into a mapping of jurisdiction to rate.

Each entry is converted on its own: an unparseable rate drops only that
entry (logged and recorded as a RateParseWarning) and never falls back to a
placeholder value.
"""

import logging
import math
import warnings
from typing import Dict, List, Optional

import httpx
from pydantic import ValidationError

from salestax import settings
from salestax.etl.utils import (
    LookupParseError,
    NoRatesFoundError,
    RateParseWarning,
    fetch_json,
)
from salestax.models import (
    Address,
    ConvertedEntry,
    RateEntry,
    RateServiceResponse,
    SkippedEntry,
    ValidRate,
)

STATE = "STATE"
COUNTY = "COUNTY"
CITY = "CITY"

KEY_BY_NAME = "name"
KEY_BY_TYPE = "type"


def convert_entry(entry: RateEntry, key_by: str = KEY_BY_NAME) -> ConvertedEntry:
    """Convert a rate service entry into a ValidRate or a SkippedEntry.

    Args:
        entry: Entry as returned by the rate service
        key_by: Use the entry's name or its upper-cased type as the key

    Returns:
        ValidRate if the rate string is a finite number, SkippedEntry otherwise
    """
    key = entry.type.strip().upper() if key_by == KEY_BY_TYPE else entry.name.strip()
    if not key:
        return SkippedEntry(name=entry.name, reason=f"missing jurisdiction {key_by}")

    try:
        rate = float(entry.rate.strip())
    except ValueError:
        return SkippedEntry(name=entry.name, reason=f"unparseable rate {entry.rate!r}")

    if not math.isfinite(rate):
        return SkippedEntry(name=entry.name, reason=f"non-finite rate {entry.rate!r}")

    return ValidRate(key=key, rate=rate)


def address_matches(address: Address, response: RateServiceResponse) -> bool:
    """Compare the echoed address against the requested one.

    Street and city compare case-insensitively, zip compares exactly. Fields
    the service did not echo are ignored.
    """
    echoed = response.address
    if echoed is None:
        return True
    if echoed.street is not None and echoed.street.strip().lower() != address.street.strip().lower():
        return False
    if echoed.city is not None and echoed.city.strip().lower() != address.city.strip().lower():
        return False
    if echoed.zip is not None and echoed.zip.strip() != address.zip.strip():
        return False
    return True


class RateLookupClient:
    """Client for the sales tax rate service."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        client_id: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        key_by: str = KEY_BY_NAME,
        require_state: bool = False,
        logger: Optional[logging.Logger] = None
    ):
        """Initialize the rate lookup client.

        Args:
            base_url: Rate service endpoint. Defaults to settings.RATE_SERVICE_URL.
            api_key: API key header value. Defaults to settings.RATE_SERVICE_API_KEY.
            client_id: Client id header value. Defaults to settings.RATE_SERVICE_CLIENT_ID.
            timeout: Request timeout in seconds. Defaults to settings.LOOKUP_TIMEOUT_SECONDS.
            transport: httpx transport, used to route requests in tests
            key_by: Key rates by jurisdiction "name" or by jurisdiction "type"
            require_state: Fail lookups that carry no state-level rate
            logger: Logger for lookup diagnostics
        """
        if key_by not in (KEY_BY_NAME, KEY_BY_TYPE):
            raise ValueError(f"key_by must be '{KEY_BY_NAME}' or '{KEY_BY_TYPE}'")

        self.base_url = base_url or settings.RATE_SERVICE_URL
        self.api_key = api_key if api_key is not None else settings.RATE_SERVICE_API_KEY
        self.client_id = client_id if client_id is not None else settings.RATE_SERVICE_CLIENT_ID
        self.timeout = timeout or settings.LOOKUP_TIMEOUT_SECONDS
        self.transport = transport
        self.key_by = key_by
        self.require_state = require_state
        self.logger = logger or logging.getLogger("salestax.rates")
        self.warnings: List[RateParseWarning] = []

    def configured(self, key_by: str, require_state: bool) -> "RateLookupClient":
        """Return a copy of this client keyed and validated differently."""
        return RateLookupClient(
            base_url=self.base_url,
            api_key=self.api_key,
            client_id=self.client_id,
            timeout=self.timeout,
            transport=self.transport,
            key_by=key_by,
            require_state=require_state,
            logger=self.logger,
        )

    def get_headers(self) -> Dict[str, str]:
        """Get the static credential headers."""
        return {
            "Accept": "application/json",
            settings.RATE_SERVICE_KEY_HEADER: self.api_key,
            settings.RATE_SERVICE_CLIENT_HEADER: self.client_id,
        }

    async def fetch(self, address: Address, quarter: int, year: int) -> RateServiceResponse:
        """Query the rate service for an address and tax period.

        Args:
            address: Address of the charge
            quarter: Calendar quarter (1-4)
            year: Calendar year

        Returns:
            Parsed rate service response

        Raises:
            LookupHTTPError: If the request fails or returns a non-2xx status
            LookupParseError: If the response is not the expected JSON document
        """
        params = {
            "street": address.street,
            "city": address.city,
            "zipcode": address.zip,
            "state": address.state,
            "quarter": quarter,
            "year": year,
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            body = await fetch_json(client, self.base_url, params=params, headers=self.get_headers())

        try:
            response = RateServiceResponse.model_validate(body)
        except ValidationError as e:
            raise LookupParseError(f"Unexpected rate service response: {str(e)}") from e

        if response.return_code != 0:
            raise LookupParseError(
                f"Rate service returned code {response.return_code} for {address.street}, {address.city}"
            )

        return response

    def extract_rates(self, address: Address, response: RateServiceResponse) -> Dict[str, float]:
        """Convert a rate service response into a jurisdiction to rate mapping.

        Raises:
            NoRatesFoundError: If no usable rate remains, or the state rate is
                missing when one is required
        """
        rates: Dict[str, float] = {}
        for entry in response.rates:
            converted = convert_entry(entry, self.key_by)
            if isinstance(converted, SkippedEntry):
                message = f"Skipping jurisdiction {converted.name!r} for {address.street}: {converted.reason}"
                self.logger.warning(message)
                warning = RateParseWarning(message)
                self.warnings.append(warning)
                warnings.warn(warning, stacklevel=2)
                continue
            rates[converted.key] = rates.get(converted.key, 0.0) + converted.rate

        if not rates:
            raise NoRatesFoundError(
                f"No tax rates found for {address.street}, {address.city}, {address.state} {address.zip}"
            )

        if self.require_state and not rates.get(STATE):
            raise NoRatesFoundError(
                f"No state tax rate found for {address.street}, {address.city}, {address.state} {address.zip}"
            )

        return rates

    async def lookup(self, address: Address, quarter: int, year: int) -> Dict[str, float]:
        """Look up the jurisdiction rates for an address and tax period.

        Args:
            address: Address of the charge
            quarter: Calendar quarter (1-4)
            year: Calendar year

        Returns:
            Mapping of jurisdiction to rate

        Raises:
            RateLookupError: If the lookup fails or yields no usable rates
        """
        response = await self.fetch(address, quarter, year)

        if not address_matches(address, response):
            echoed = response.address
            self.logger.warning(
                f"Address mismatch: requested {address.street}, {address.city} {address.zip}, "
                f"service resolved {echoed.street}, {echoed.city} {echoed.zip}"
            )

        rates = self.extract_rates(address, response)
        self.logger.debug(f"Rates for {address.street} Q{quarter} {year}: {rates}")
        return rates
