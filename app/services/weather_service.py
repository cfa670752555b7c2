"""Placeholder weather forecast generator.

The data is random; the endpoints exist to exercise the request pipeline
(rate limiting, security headers, authentication).
"""

from __future__ import annotations

import datetime as dt
import random

from app.schemas.weather import WeatherForecast

SUMMARIES: tuple[str, ...] = (
    "Freezing",
    "Bracing",
    "Chilly",
    "Cool",
    "Mild",
    "Warm",
    "Balmy",
    "Hot",
    "Sweltering",
    "Scorching",
)

MIN_TEMPERATURE_C = -20
MAX_TEMPERATURE_C = 55  # exclusive


def celsius_to_fahrenheit(temperature_c: int) -> int:
    return 32 + int(temperature_c / 0.5556)


class WeatherService:
    """Generate random forecasts.

    Attributes:
        rng: Random source, injectable for deterministic tests.
        today: Callable returning the reference day.
    """

    def __init__(self, rng: random.Random | None = None, today=dt.date.today) -> None:
        self.rng = rng or random.Random()
        self.today = today

    def _forecast_for(self, day: dt.date, forecast_id: int | None = None) -> WeatherForecast:
        temperature_c = self.rng.randrange(MIN_TEMPERATURE_C, MAX_TEMPERATURE_C)
        return WeatherForecast(
            id=forecast_id,
            date=day,
            temperature_c=temperature_c,
            temperature_f=celsius_to_fahrenheit(temperature_c),
            summary=self.rng.choice(SUMMARIES),
        )

    def upcoming(self, days: int = 5) -> list[WeatherForecast]:
        """Forecasts for the next ``days`` days, starting tomorrow."""
        start = self.today()
        return [self._forecast_for(start + dt.timedelta(days=offset)) for offset in range(1, days + 1)]

    def by_id(self, forecast_id: int) -> WeatherForecast:
        """Today's forecast tagged with ``forecast_id``."""
        return self._forecast_for(self.today(), forecast_id)
