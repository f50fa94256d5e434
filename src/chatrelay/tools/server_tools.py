"""Reference tools executed inside the server process."""

from __future__ import annotations

import random
from typing import Any, Literal, Optional

from pydantic import Field, field_validator

from ..schemas.chat import WireModel
from ..time_context import create_time_snapshot, is_known_timezone
from .client_schemas import CLIENT_TOOLS
from .registry import ExecutionSite, ToolDefinition, ToolRegistry

WEATHER_CONDITIONS = ("Sunny", "Cloudy", "Rainy", "Partly Cloudy")


class WeatherInput(WireModel):
    location: str = Field(
        min_length=1,
        description="The city and state, e.g. San Francisco, CA",
    )
    unit: Literal["celsius", "fahrenheit"] = "fahrenheit"


class WeatherReport(WireModel):
    location: str
    temperature: int
    unit: Literal["celsius", "fahrenheit"]
    conditions: str
    humidity: int = Field(ge=0, le=100)
    wind_speed: int = Field(ge=0)


def get_weather(params: WeatherInput) -> WeatherReport:
    return WeatherReport(
        location=params.location,
        temperature=22 if params.unit == "celsius" else 72,
        unit=params.unit,
        conditions=random.choice(WEATHER_CONDITIONS),
        humidity=random.randint(40, 79),
        wind_speed=random.randint(5, 24),
    )


class ProductSearchInput(WireModel):
    query: str = Field(description="The search query")
    category: Optional[str] = Field(default=None, description="Filter by category")
    max_results: int = Field(
        default=5, ge=1, le=50, description="Maximum number of results"
    )


class Product(WireModel):
    id: int
    name: str
    price: float
    category: str


class ProductSearchResult(WireModel):
    query: str
    category: Optional[str] = None
    results: list[Product]
    total_found: int


_CATALOG = (
    (29.99, "Electronics"),
    (49.99, "Electronics"),
    (19.99, "Home"),
    (99.99, "Electronics"),
    (39.99, "Fashion"),
)


def search_products(params: ProductSearchInput) -> ProductSearchResult:
    matches = [
        Product(
            id=index,
            name=f"{params.query} Product {index}",
            price=price,
            category=params.category or default_category,
        )
        for index, (price, default_category) in enumerate(_CATALOG, start=1)
    ]
    return ProductSearchResult(
        query=params.query,
        category=params.category,
        results=matches[: params.max_results],
        total_found=len(matches),
    )


class CurrentTimeInput(WireModel):
    timezone: str = Field(
        default="UTC", description="Timezone (e.g., America/New_York)"
    )

    @field_validator("timezone")
    @classmethod
    def _known_zone(cls, value: str) -> str:
        if not is_known_timezone(value):
            raise ValueError(f"Unknown timezone '{value}'")
        return value


def get_current_time(params: CurrentTimeInput) -> dict[str, Any]:
    return create_time_snapshot(params.timezone).as_payload()


SERVER_TOOLS: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name="getWeather",
        description="Get the current weather for a location",
        input_model=WeatherInput,
        handler=get_weather,
        output_model=WeatherReport,
    ),
    ToolDefinition(
        name="searchProducts",
        description="Search for products in the catalog",
        input_model=ProductSearchInput,
        handler=search_products,
        output_model=ProductSearchResult,
    ),
    ToolDefinition(
        name="getCurrentTime",
        description="Get the current date and time",
        input_model=CurrentTimeInput,
        handler=get_current_time,
        execution_site=ExecutionSite.SERVER,
    ),
)


def build_default_registry(*, timeout: float = 5.0) -> ToolRegistry:
    """Return a registry holding the server tools and client declarations."""

    return ToolRegistry((*SERVER_TOOLS, *CLIENT_TOOLS), default_timeout=timeout)


__all__ = [
    "SERVER_TOOLS",
    "CurrentTimeInput",
    "ProductSearchInput",
    "WeatherInput",
    "build_default_registry",
    "get_current_time",
    "get_weather",
    "search_products",
]
