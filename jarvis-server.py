#!/usr/bin/env python3
"""Jarvis server entry point."""

import uvicorn

from jarvis.adapters.web.server import app
from jarvis.config import CONFIG

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=CONFIG["port"], log_level="info")
