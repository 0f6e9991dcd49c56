"""Serve the gamification API with uvicorn.

Run with:  python3 serve.py
"""

from __future__ import annotations

import os

import uvicorn

from api.main import create_app


def main() -> None:
    host = os.getenv("API_HOST", "127.0.0.1")
    port = int(os.getenv("API_PORT", "8000"))
    uvicorn.run(create_app(), host=host, port=port, log_level=os.getenv("UVICORN_LOG_LEVEL", "warning"))


if __name__ == "__main__":
    main()
