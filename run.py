#!/usr/bin/env python3
"""Run script for TaskFlow."""

import logging

import uvicorn

from taskflow.database.database import init_db

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
    uvicorn.run(
        "taskflow.api.app:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
