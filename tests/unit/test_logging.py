"""Tests for logging configuration."""

import structlog

from api.config import APP_VERSION, Settings
from api.logging import MAX_VALUE_LENGTH, add_app_context, build_processors, truncate_long_values


def test_truncates_long_values() -> None:
    """Test oversized values are cut and the event name is kept."""
    event = {"event": "x" * 1000, "prompt": "p" * 2000, "url": "https://a.example"}
    result = truncate_long_values(None, "info", event)
    assert result["event"] == "x" * 1000
    assert result["prompt"].startswith("p" * MAX_VALUE_LENGTH)
    assert result["prompt"].endswith("(2000 chars)")
    assert result["url"] == "https://a.example"


def test_app_context() -> None:
    """Test service and version are added without overwriting."""
    result = add_app_context(None, "info", {"event": "e", "version": "custom"})
    assert result["service"] == "lift-audit"
    assert result["version"] == "custom"
    assert add_app_context(None, "info", {})["version"] == APP_VERSION


def test_production_renders_json() -> None:
    """Test production logging ends with the JSON renderer."""
    processors = build_processors(Settings(_env_file=None, env="production"))
    assert isinstance(processors[-1], structlog.processors.JSONRenderer)
    assert add_app_context in processors


def test_development_renders_console() -> None:
    """Test development logging ends with the console renderer."""
    processors = build_processors(Settings(_env_file=None, env="development"))
    assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)
    assert add_app_context not in processors
