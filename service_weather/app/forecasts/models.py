"""
Forecast records and the random forecast generator.
"""

import random
from datetime import date, timedelta
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from shared.errors import ValidationError

SUMMARIES = (
    "Freezing", "Bracing", "Chilly", "Cool", "Mild",
    "Warm", "Balmy", "Hot", "Sweltering", "Scorching",
)

MAX_FORECAST_DAYS = 100


class WeatherForecast(BaseModel):
    """One day of forecast. Serialized with camelCase field names."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    date: date
    temperature_c: int
    humidity: int = Field(ge=0, le=100)
    summary: Optional[str] = None

    @computed_field(alias="temperatureF")
    @property
    def temperature_f(self) -> int:
        # Truncates toward zero.
        return 32 + int(self.temperature_c / 0.5556)


def generate_forecasts(count: int,
                       rng: Optional[random.Random] = None,
                       today: Optional[date] = None) -> List[WeatherForecast]:
    """Generate ``count`` forecasts starting tomorrow."""
    if count < 0 or count > MAX_FORECAST_DAYS:
        raise ValidationError(
            f"Forecast count must be between 0 and {MAX_FORECAST_DAYS}",
            details={"count": count}
        )

    rng = rng or random.Random()
    today = today or date.today()
    return [
        WeatherForecast(
            date=today + timedelta(days=index),
            temperature_c=rng.randrange(-20, 55),
            humidity=rng.randrange(20, 95),
            summary=rng.choice(SUMMARIES),
        )
        for index in range(1, count + 1)
    ]
