#!/usr/bin/env python3
# backend/run.py
"""
Development server runner.

Uses the SQLite database from settings unless DATABASE_URL says otherwise.
"""
import os
from pathlib import Path

import uvicorn

if __name__ == "__main__":
    os.chdir(Path(__file__).parent)
    port = int(os.getenv("PORT", "8000"))
    print(f"Studio ledger API at http://localhost:{port} (docs at /docs)")

    uvicorn.run("studio_ledger.main:app", host="0.0.0.0", port=port, reload=True, log_level="info")
