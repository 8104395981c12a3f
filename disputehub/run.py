#!/usr/bin/env python3
"""
Development runner
==================

Usage:
    python -m disputehub.run
    PORT=9000 python -m disputehub.run
"""

import os

import uvicorn

from .config import get_settings

if __name__ == "__main__":
    port = int(os.environ.get("PORT", "8000"))
    for warning in get_settings().validate_config():
        print(f"warning: {warning}")
    print(f"DisputeHub on http://localhost:{port} (docs at /docs)")

    uvicorn.run("disputehub.api:app", host="0.0.0.0", port=port, reload=True)
