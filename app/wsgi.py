"""
WSGI entry point (gunicorn target `app.wsgi:app`).

A database that cannot be opened or pinged at startup is fatal: log and exit
before any request is served.
"""

from __future__ import annotations

import logging
import sys

from app.crm import create_app
from app.crm.errors import DatabaseUnavailable

logger = logging.getLogger(__name__)

try:
    app = create_app()
except DatabaseUnavailable as e:
    logging.basicConfig(level=logging.INFO)
    logger.critical("%s", e)
    sys.exit(1)


if __name__ == "__main__":
    port = app.config["PORT"]
    logger.info("Server starting on port %s", port)
    app.run(host="0.0.0.0", port=port)
