#!/usr/bin/env python3
"""
AdSync API Startup Script

Starts the AdSync FastAPI server for local development.
"""

import sys
from pathlib import Path

import uvicorn


def main():
    """Start the AdSync API server."""
    print("Starting AdSync API Server...")
    print("   Google OAuth:  /google-auth")
    print("   Google Ads:    /google-ads")
    print("   Swagger UI:    http://localhost:8000/docs")
    print("")

    env_file = Path(".env")
    if not env_file.exists():
        print("WARNING: No .env file found!")
        print("   Create one with at least:")
        print("   DATABASE_URL=postgresql://...")
        print("   CRYPTO_SECRET=<64 hex chars, see generate_keys.py>")
        print("   SUPABASE_JWT_SECRET=...")
        print("   GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET / GOOGLE_DEVELOPER_TOKEN")
        print("")

    try:
        uvicorn.run(
            "app.main:app",
            host="0.0.0.0",
            port=8000,
            reload=True,
            reload_dirs=["app"],
            log_level="info"
        )
    except KeyboardInterrupt:
        print("\nShutting down AdSync API server...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
