#!/usr/bin/env python3
"""
Run script for the Voice Collect service
"""
import uvicorn

from voice_collect.config.settings import get_settings
from voice_collect.main import app

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port, reload=settings.debug)
