"""Pydantic schemas for weather forecast responses."""

from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, Field


class WeatherForecast(BaseModel):
    """Single placeholder forecast."""

    id: int | None = Field(
        default=None,
        description="Requested forecast id (only set on the single-forecast endpoint).",
    )
    date: dt.date = Field(..., description="Forecast day.")
    temperature_c: int = Field(..., description="Temperature in degrees Celsius.")
    temperature_f: int = Field(..., description="Temperature in degrees Fahrenheit.")
    summary: str = Field(..., description="Short human-readable description.")
