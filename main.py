#!/usr/bin/env python3
"""
Dual-PPG Pulse Transit Time Estimator — Main Entry Point
=========================================================
Launches the FastAPI backend with Uvicorn.
Run with:  python main.py [--host 0.0.0.0] [--port 8000]

⚠️  DISCLAIMER: This is a WELLNESS ESTIMATION tool, NOT a medical device.
    Pulse transit time is estimated from two consumer camera PPG signals
    and is not clinically validated.
"""

import argparse

import uvicorn

from api.app import create_app

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Dual-PPG PTT API server")
    parser.add_argument("--host", type=str, default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()

    app = create_app()
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        reload=False,
        log_level="info",
    )
