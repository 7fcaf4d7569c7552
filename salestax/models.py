"""
Data models for the SalesTax pipeline.

This module defines the pydantic models shared by the parser, the rate
lookup client, the orchestrator and the report writer.
"""

from typing import Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field


class Address(BaseModel):
    """Postal address of a charge."""
    street: str
    city: str
    state: str
    zip: str

    class Config:
        """Pydantic config."""
        frozen = True


class ChargeRecord(BaseModel):
    """A validated input row."""
    row_index: int
    client: str
    date: Optional[str] = None
    month: int
    day: int
    year: int
    quarter: int
    charge: float
    address: Address
    raw_fields: Tuple[str, ...]

    class Config:
        """Pydantic config."""
        frozen = True


class EnrichedRecord(BaseModel):
    """A charge record with its tax owed per jurisdiction."""
    record: ChargeRecord
    taxes: Dict[str, float]

    class Config:
        """Pydantic config."""
        frozen = True

    @property
    def row_index(self) -> int:
        return self.record.row_index

    @property
    def raw_fields(self) -> Tuple[str, ...]:
        return self.record.raw_fields


class RowFailure(BaseModel):
    """A row that could not be enriched, reported inline."""
    row_index: int
    raw_fields: Tuple[str, ...]
    error: str

    class Config:
        """Pydantic config."""
        frozen = True


RowOutcome = Union[EnrichedRecord, RowFailure]


# Rate service response schema

class RateEntry(BaseModel):
    """One jurisdiction entry as returned by the rate service."""
    name: str
    type: str = ""
    rate: str


class EchoedAddress(BaseModel):
    """Address as resolved by the rate service."""
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None


class RateServiceResponse(BaseModel):
    """Rate service response body."""
    return_code: int = Field(0, alias="returnCode")
    address: Optional[EchoedAddress] = None
    rates: List[RateEntry] = []


class ValidRate(BaseModel):
    """A rate entry whose rate string parsed successfully."""
    key: str
    rate: float


class SkippedEntry(BaseModel):
    """A rate entry dropped because its rate string is unusable."""
    name: str
    reason: str


ConvertedEntry = Union[ValidRate, SkippedEntry]
