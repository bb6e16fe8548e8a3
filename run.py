#!/usr/bin/env python3
"""
Run the mongo-uri-doctor HTTP server.

Usage:
    python run.py

    # or with venv
    .venv/Scripts/python run.py
"""
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))


def run_fastapi():
    """Run with FastAPI/uvicorn"""
    import uvicorn
    from mongo_uri_doctor.core import get_settings

    settings = get_settings()

    print(f"Starting mongo-uri-doctor on {settings.server_host}:{settings.server_port}")
    uvicorn.run(
        'mongo_uri_doctor.main:app',
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run_fastapi()
