"""
Configuration file for the disaster-aware routing backend.
"""
import os
from dotenv import load_dotenv

load_dotenv()


def _env_int(name, default):
    value = os.getenv(name)
    if value is None or value.strip() == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


class Config:
    """Base configuration"""
    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('DEBUG', 'True').lower() == 'true'
    MAX_CONTENT_LENGTH = 2 * 1024 * 1024  # 2 MB - route geometries are the largest payloads

    # Upstream API keys
    MAPBOX_ACCESS_TOKEN = os.getenv('MAPBOX_ACCESS_TOKEN')
    OPENWEATHER_API_KEY = os.getenv('OPENWEATHER_API_KEY')
    OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
    OPENAI_MODEL = os.getenv('OPENAI_MODEL', 'gpt-4o-mini')

    # CORS
    CORS_ORIGINS = [origin for origin in os.getenv('CORS_ORIGINS', 'http://localhost:3000').split(',') if origin]

    # Rate limiting storage (memory:// for a single process, redis://host:6379 when scaled out)
    RATELIMIT_STORAGE_URI = os.getenv('REDIS_URL', 'memory://')

    # Route scoring
    ROUTE_SCORING_WORKERS = _env_int('ROUTE_SCORING_WORKERS', 5)

    # Weather-derived hazard zones go stale quickly
    HAZARD_CACHE_TTL_SECONDS = _env_int('HAZARD_CACHE_TTL_SECONDS', 30 * 60)

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'DEBUG').upper()


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}
