#!/usr/bin/env python3
"""
Quick runner for the Dispute Document Service
=============================================

Usage:
    python -m dispute_backend.run

HOST / PORT override the bind address; RELOAD=false disables autoreload.
"""

import os

import uvicorn

if __name__ == "__main__":
    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8000"))

    print("Starting Dispute Document Service...")
    print(f"API docs: http://localhost:{port}/docs")
    print(f"Health:   http://localhost:{port}/health")
    print()

    uvicorn.run(
        "dispute_backend.api:app",
        host=host,
        port=port,
        reload=os.environ.get("RELOAD", "true").lower() == "true",
    )
