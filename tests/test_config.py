from capture_api.config import (
    BASE_BROWSER_ARGS,
    DEFAULT_BODY_LIMIT_BYTES,
    DEFAULT_CONCURRENCY,
    MAX_RETRIES_WHEN_ERROR,
    load_settings,
)


def test_defaults_from_empty_environment():
    settings = load_settings({})

    assert settings.max_concurrency == DEFAULT_CONCURRENCY == 15
    assert settings.allow_private_networks is False
    assert settings.monitor is False
    assert settings.max_retries == MAX_RETRIES_WHEN_ERROR == 3
    assert settings.retry_delay_ms == 0
    assert settings.body_limit_bytes == DEFAULT_BODY_LIMIT_BYTES
    assert settings.browser_args == BASE_BROWSER_ARGS
    assert settings.port == 8080


def test_environment_overrides():
    settings = load_settings({
        "CONCURRENCY": "4",
        "ALLOW_PRIVATE_NETWORKS": "true",
        "MONITOR": "1",
        "MONITOR_INTERVAL": "10",
        "RETRY_DELAY_MS": "500",
        "BROWSER_ARGS": "--lang=de-DE, --font-render-hinting=none",
        "PORT": "9000",
        "LOG_LEVEL": "DEBUG",
    })

    assert settings.max_concurrency == 4
    assert settings.allow_private_networks is True
    assert settings.monitor is True
    assert settings.monitor_interval == 10
    assert settings.retry_delay_ms == 500
    assert settings.browser_args == BASE_BROWSER_ARGS + ("--lang=de-DE", "--font-render-hinting=none")
    assert settings.port == 9000
    assert settings.log_level == "DEBUG"


def test_private_networks_need_the_exact_value_true():
    for value in ("1", "yes", "TRUE", "True", ""):
        assert load_settings({"ALLOW_PRIVATE_NETWORKS": value}).allow_private_networks is False


def test_invalid_numbers_fall_back_to_defaults():
    settings = load_settings({"CONCURRENCY": "lots", "PORT": "http"})

    assert settings.max_concurrency == DEFAULT_CONCURRENCY
    assert settings.port == 8080


def test_concurrency_is_at_least_one():
    assert load_settings({"CONCURRENCY": "0"}).max_concurrency == 1
