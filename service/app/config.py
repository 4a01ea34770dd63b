from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Supabase
    supabase_url: str
    supabase_service_role_key: str

    # Groq (OpenAI-compatible endpoint)
    groq_api_key: str
    groq_base_url: str = "https://api.groq.com/openai/v1"
    groq_model: str = "meta-llama/llama-4-scout-17b-16e-instruct"
    groq_tts_model: str = "playai-tts"
    groq_tts_voice: str = "Celeste-PlayAI"
    bot_personality: str = "Eres un asistente util. Respondes en espanol, breve y con formato de WhatsApp."

    # WhatsApp gateway
    whatsapp_gateway_url: str = "http://localhost:3000"
    whatsapp_gateway_token: str = ""
    whatsapp_webhook_secret: str = ""  # Optional: for webhook verification

    # Admin identity (phone without "+", and the optional LID alias)
    admin_number: str = ""
    admin_lid: str = ""

    # Environment
    environment: str = "development"
    timezone: str = "America/Bogota"

    # Gastos (Google Sheets ledger)
    google_service_account_file: str = "credentials/service_account.json"
    learned_categories_path: str = "data/learned_categories.json"

    # Briefing
    briefing_enabled: bool = True
    weather_latitude: float = 4.711
    weather_longitude: float = -74.0721
    weather_city: str = "Bogotá"

    # Media
    giphy_api_key: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
