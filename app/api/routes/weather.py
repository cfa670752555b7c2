import logging

from fastapi import APIRouter, Depends

from app.core.errors import ValidationAppError
from app.core.rate_limit import AUTH_POLICY_ID, require_rate_limit
from app.schemas.weather import WeatherForecast
from app.services.weather_service import WeatherService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/weather", tags=["Weather"])

_weather_service = WeatherService()


def get_weather_service() -> WeatherService:
    return _weather_service


@router.get("", response_model=list[WeatherForecast])
async def list_forecasts(
    service: WeatherService = Depends(get_weather_service),
) -> list[WeatherForecast]:
    """Public forecast endpoint, protected by the global rate limit only.

    Returns:
        list[WeatherForecast]: Five forecasts starting tomorrow.
    """
    return service.upcoming(days=5)


@router.get(
    "/{forecast_id}",
    response_model=WeatherForecast,
    dependencies=[Depends(require_rate_limit(AUTH_POLICY_ID))],
)
async def get_forecast(
    forecast_id: int,
    service: WeatherService = Depends(get_weather_service),
) -> WeatherForecast:
    """Sensitive endpoint with the stricter per-client policy.

    Args:
        forecast_id: Positive forecast identifier.

    Returns:
        WeatherForecast: Today's forecast tagged with the id.

    Raises:
        ValidationAppError: 400 if the id is not positive. The message does
            not reveal anything about stored data.
    """
    if forecast_id <= 0:
        raise ValidationAppError(code="invalid_request", message="Invalid request")

    logger.info("weather.forecast_accessed", extra={"forecast_id": forecast_id})
    return service.by_id(forecast_id)
