#!/usr/bin/env python3
"""
Receipt parse service
Run this file to start the API server
"""

import os

import uvicorn

from receipt_service.main import create_app


def main():
    """Main entry point for the receipt parse service"""
    port_env = os.environ.get("PORT")
    port = 3000
    if port_env:
        try:
            port = int(port_env)
        except ValueError:
            print(f"⚠️ Invalid PORT value: {port_env}, using default {port}")

    print(f"🚀 Starting receipt parse service on port {port}")
    print(f"📚 API Documentation: http://localhost:{port}/docs")

    uvicorn.run(
        create_app(),
        host="0.0.0.0",
        port=port,
        reload=False,
        access_log=True,
        log_level=os.environ.get("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
