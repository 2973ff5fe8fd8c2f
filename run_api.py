#!/usr/bin/env python3
"""
Script to run the Bookstore API server.
"""

import sys
from pathlib import Path

import uvicorn

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from bookstore.config import APIConfig
from utilities.logger import get_logger, setup_logging


def main():
    """Run the API server."""
    config = APIConfig()
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug,
    )
    logger = get_logger(__name__)
    logger.info(
        "Starting Bookstore API server",
        host=config.host,
        port=config.port,
        debug=config.debug,
        database=config.get_database_name(),
    )

    # Startup aborts, and the port is never served, if the schema check fails
    uvicorn.run(
        "bookstore.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        lifespan="on",
        log_level=config.log_level.lower(),
        access_log=True
    )


if __name__ == "__main__":
    main()
