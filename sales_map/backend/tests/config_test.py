import pytest

from config import DEFAULT_CORS_ORIGINS, load_settings

ENV_VARS = [
    "GOOGLE_MAP_API",
    "GOOGLE_GEOCODING_API",
    "VITE_GOOGLE_MAPS_API_KEY",
    "GEOCODE_REGION",
    "GEOCODE_BATCH_SIZE",
    "GEOCODE_BATCH_DELAY",
    "GEOCODE_TIMEOUT",
    "CORS_ORIGINS",
    "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Keep any developer .env out of the picture
    monkeypatch.chdir(tmp_path)


def test_defaults_without_environment():
    settings = load_settings()

    assert settings.geocoding_api_key is None
    assert settings.proxy_api_key is None
    assert settings.geocode_region == "India"
    assert settings.geocode_batch_size == 10
    assert settings.geocode_batch_delay == 1.0
    assert list(settings.cors_origins) == DEFAULT_CORS_ORIGINS
    assert settings.log_level == "INFO"


def test_geocoding_key_fallbacks(monkeypatch):
    monkeypatch.setenv("GOOGLE_GEOCODING_API", "geo-key")
    monkeypatch.setenv("VITE_GOOGLE_MAPS_API_KEY", "browser-key")
    settings = load_settings()
    assert settings.geocoding_api_key == "geo-key"
    assert settings.proxy_api_key == "geo-key"

    monkeypatch.setenv("GOOGLE_MAP_API", "map-key")
    assert load_settings().geocoding_api_key == "map-key"


def test_browser_key_only_enables_the_proxy(monkeypatch):
    monkeypatch.setenv("VITE_GOOGLE_MAPS_API_KEY", "browser-key")
    settings = load_settings()
    assert settings.geocoding_api_key is None
    assert settings.proxy_api_key == "browser-key"


def test_values_are_parsed_from_environment(monkeypatch):
    monkeypatch.setenv("GEOCODE_BATCH_SIZE", "25")
    monkeypatch.setenv("GEOCODE_BATCH_DELAY", "0.5")
    monkeypatch.setenv("CORS_ORIGINS", "https://dash.example.com, http://localhost:8080")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = load_settings()

    assert settings.geocode_batch_size == 25
    assert settings.geocode_batch_delay == 0.5
    assert settings.cors_origins == ("https://dash.example.com", "http://localhost:8080")
    assert settings.log_level == "DEBUG"


def test_invalid_number_is_reported(monkeypatch):
    monkeypatch.setenv("GEOCODE_BATCH_SIZE", "ten")
    with pytest.raises(ValueError, match="GEOCODE_BATCH_SIZE"):
        load_settings()
