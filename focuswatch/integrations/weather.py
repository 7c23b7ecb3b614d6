"""OpenWeatherMap integration — current conditions and the next 24 hours.

Implements WeatherPort. HTTP and parse failures are raised as FetchError
subclasses; the remote cache decides whether stale data can be served.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from focuswatch.ports.fetch_port import FetchError, MalformedResponseError, UnauthenticatedError

logger = logging.getLogger(__name__)

_BASE_URL = "https://api.openweathermap.org/data/2.5"
_TIMEOUT_SECONDS = 10
_FORECAST_POINTS = 8  # 3-hour steps → 24 hours


def _parse_current(data: dict) -> dict:
    weather = (data.get("weather") or [{}])[0]
    main = data["main"]
    return {
        "temp": round(main["temp"]),
        "feels_like": round(main.get("feels_like", main["temp"])),
        "humidity": main.get("humidity"),
        "condition": weather.get("main", ""),
        "description": weather.get("description", ""),
        "icon": weather.get("icon", ""),
        "wind_speed": round((data.get("wind") or {}).get("speed", 0)),
        "city": data.get("name", ""),
    }


def _parse_forecast(data: dict) -> list[dict]:
    points = []
    for item in data.get("list", []):
        weather = (item.get("weather") or [{}])[0]
        points.append({
            "time_ms": int(item["dt"]) * 1000,
            "temp": round(item["main"]["temp"]),
            "condition": weather.get("main", ""),
            "icon": weather.get("icon", ""),
        })
    return points


class OpenWeatherClient:
    """httpx implementation of WeatherPort."""

    def __init__(self, api_key: str, lat: float, lon: float) -> None:
        self._api_key = api_key
        self._lat = lat
        self._lon = lon

    def _params(self, **extra) -> dict:
        return {
            "lat": self._lat,
            "lon": self._lon,
            "appid": self._api_key,
            "units": "imperial",
            **extra,
        }

    async def get_weather(self) -> dict:
        if not self._api_key:
            raise UnauthenticatedError("WEATHER_API_KEY is not set")

        try:
            async with httpx.AsyncClient(timeout=_TIMEOUT_SECONDS) as client:
                current_resp, forecast_resp = await asyncio.gather(
                    client.get(f"{_BASE_URL}/weather", params=self._params()),
                    client.get(f"{_BASE_URL}/forecast", params=self._params(cnt=_FORECAST_POINTS)),
                )
                for resp in (current_resp, forecast_resp):
                    if resp.status_code == 401:
                        raise UnauthenticatedError("OpenWeatherMap rejected the API key")
                    resp.raise_for_status()
                current_data = current_resp.json()
                forecast_data = forecast_resp.json()
        except httpx.HTTPError as exc:
            logger.warning("Weather fetch failed: %s", exc)
            raise FetchError(f"Weather fetch failed: {exc}") from exc
        except ValueError as exc:
            raise MalformedResponseError(f"Weather response is not JSON: {exc}") from exc

        try:
            result = {
                "current": _parse_current(current_data),
                "forecast": _parse_forecast(forecast_data),
            }
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedResponseError(f"Unexpected weather payload: {exc}") from exc

        logger.info("Weather: %s°F, %s", result["current"]["temp"], result["current"]["condition"])
        return result
