#!/usr/bin/env python3
"""Main entry point for TeleGuard."""

import uvicorn

from teleguard.common.logging import get_logger
from teleguard.common.config import get_config

logger = get_logger(__name__)


def main():
    """Start the API gateway."""
    config = get_config()
    logger.info(f"TeleGuard starting in {config.environment.value} mode")
    logger.info(f"Storage backend: {config.storage_backend.value}")
    uvicorn.run(
        "teleguard.api.gateway:app",
        host="0.0.0.0",
        port=8000,
        log_level=config.log_level.value.lower(),
    )


if __name__ == "__main__":
    main()
