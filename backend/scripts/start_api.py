"""Start the Atelier API with uvicorn (PORT and LOG_LEVEL from the environment)."""
import logging
import os

import uvicorn

logger = logging.getLogger(__name__)


def _read_port() -> int:
    value = os.environ.get("PORT", "8000")
    try:
        return int(value)
    except ValueError as exc:
        raise SystemExit(f"Invalid PORT '{value}': {exc}") from exc


def main() -> None:
    port = _read_port()
    logger.info(f"Starting Atelier API on port {port}")
    uvicorn.run(
        "atelier.main:app",
        host="0.0.0.0",
        port=port,
        log_level=os.environ.get("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
