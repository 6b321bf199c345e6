"""Production startup script for the LIFT audit API.

Starts uvicorn with host and port taken from settings, honoring the
PORT variable that most hosting platforms inject.
"""

import os
import sys

from api.config import get_settings


def start_api() -> None:
    """Start the FastAPI application with uvicorn."""
    settings = get_settings()
    port = os.getenv("PORT", str(settings.api_port))
    host = settings.api_host

    print(f"Starting API server on {host}:{port}...")

    # Use exec to replace the current process
    os.execvp(
        "uvicorn",
        [
            "uvicorn",
            "api.main:app",
            "--host",
            host,
            "--port",
            port,
            "--proxy-headers",
            "--forwarded-allow-ips",
            "*",
        ],
    )


if __name__ == "__main__":
    if not get_settings().generator_enabled:
        print("Warning: OPENAI_API_KEY is not set; /analyze will answer 503.", file=sys.stderr)
    start_api()
