"""
Current weather from Open-Meteo (free, no API key).
"""

from dataclasses import dataclass
from typing import Optional

import httpx

from app.config import get_settings
from app.whatsapp_bot.logging_config import get_logger

logger = get_logger("briefing.weather")

OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"

# WMO weather interpretation codes
WMO_DESCRIPTIONS = {
    0: "despejado",
    1: "mayormente despejado",
    2: "parcialmente nublado",
    3: "nublado",
    45: "niebla",
    48: "niebla con escarcha",
    51: "llovizna ligera",
    53: "llovizna moderada",
    55: "llovizna intensa",
    61: "lluvia ligera",
    63: "lluvia moderada",
    65: "lluvia intensa",
    71: "nevada ligera",
    73: "nevada moderada",
    75: "nevada intensa",
    80: "chubascos ligeros",
    81: "chubascos moderados",
    82: "chubascos intensos",
    85: "chubascos de nieve ligeros",
    86: "chubascos de nieve intensos",
    95: "tormenta eléctrica",
    96: "tormenta con granizo ligero",
    99: "tormenta con granizo intenso",
}


@dataclass
class Weather:
    city: str
    temp: int
    feels_like: int
    description: str
    temp_max: int
    temp_min: int
    humidity: int
    rain_chance: int
    icon: str


def weather_emoji(code: int, is_day: bool = True) -> str:
    if code == 0:
        return "☀️" if is_day else "🌙"
    if code <= 2:
        return "⛅" if is_day else "☁️"
    if code == 3:
        return "☁️"
    if code <= 48:
        return "🌫️"
    if code <= 55:
        return "🌦️"
    if code <= 65:
        return "🌧️"
    if code <= 77:
        return "❄️"
    if code <= 82:
        return "🌧️"
    if code <= 86:
        return "🌨️"
    return "⛈️"


async def get_weather(lat: Optional[float] = None, lon: Optional[float] = None,
                      city: Optional[str] = None) -> Optional[Weather]:
    """Current conditions plus today's range. Returns None on any failure."""
    settings = get_settings()
    params = {
        "latitude": lat if lat is not None else settings.weather_latitude,
        "longitude": lon if lon is not None else settings.weather_longitude,
        "current": "temperature_2m,relative_humidity_2m,apparent_temperature,weather_code,is_day",
        "daily": "temperature_2m_max,temperature_2m_min,precipitation_probability_max,weather_code",
        "timezone": settings.timezone,
        "forecast_days": 1,
    }
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(OPEN_METEO_URL, params=params)
            response.raise_for_status()
            data = response.json()

        current = data["current"]
        daily = data["daily"]
        code = int(current.get("weather_code", -1))
        return Weather(
            city=city or settings.weather_city,
            temp=round(current["temperature_2m"]),
            feels_like=round(current["apparent_temperature"]),
            description=WMO_DESCRIPTIONS.get(code, "desconocido"),
            temp_max=round(daily["temperature_2m_max"][0]),
            temp_min=round(daily["temperature_2m_min"][0]),
            humidity=int(current.get("relative_humidity_2m") or 0),
            rain_chance=int((daily.get("precipitation_probability_max") or [0])[0] or 0),
            icon=weather_emoji(code, bool(current.get("is_day", 1))),
        )
    except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
        logger.error(f"Weather lookup failed: {e}")
        return None


def format_weather(weather: Optional[Weather]) -> Optional[str]:
    if weather is None:
        return None

    lines = [
        f"{weather.icon} *Clima {weather.city}*",
        f"Ahora: *{weather.temp}°C*, {weather.description}",
        f"Max: {weather.temp_max}°C | Min: {weather.temp_min}°C",
    ]
    if weather.rain_chance > 50:
        lines.append(f"Lluvia: *{weather.rain_chance}%* (lleva paraguas ☂️)")
    elif weather.rain_chance > 20:
        lines.append(f"Lluvia: {weather.rain_chance}% (por si acaso)")
    return "\n".join(lines)
