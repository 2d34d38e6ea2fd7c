#!/usr/bin/env python3
# backend/run.py
"""
Development server runner for the Study Room scheduling API.
"""
import os
from pathlib import Path
import sys

backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

import uvicorn  # noqa: E402

if __name__ == "__main__":
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    print(f"Starting Study Room API at http://localhost:{port} (docs at /docs)")
    uvicorn.run("studyroom.main:app", host=host, port=port, reload=True, log_level="info")
