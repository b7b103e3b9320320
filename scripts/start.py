#!/usr/bin/env python3
"""
Production startup script: exec gunicorn on the configured PORT.

Usage:
    python scripts/start.py

PORT comes from the same settings the app reads (default 8080). os.execvp
makes gunicorn PID 1 so it receives signals directly.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.crm.config import load_settings  # noqa: E402


def gunicorn_argv(port: int) -> list[str]:
    # --preload builds the app (and pings the database) once in the master,
    # so an unreachable database stops the server before it accepts traffic.
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", "2",
        "--timeout", "60",
        "--preload",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    load_dotenv()
    try:
        port = load_settings().port
    except RuntimeError as e:
        print(f"ERROR: {e}", flush=True)
        sys.exit(1)

    print(f"Starting gunicorn on 0.0.0.0:{port}", flush=True)
    os.execvp("gunicorn", gunicorn_argv(port))


if __name__ == "__main__":
    main()
