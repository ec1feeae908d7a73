"""
main.py: Server launcher and entry point.

Run this file to start the group booking API:

    python main.py

This file does NOT contain application logic. See app.py for the FastAPI
application, service wiring, and startup sequence.

Direct uvicorn usage:
    uvicorn app:app --reload
"""

from __future__ import annotations

import argparse

import uvicorn


HOST = "127.0.0.1"
PORT = 8000


def main() -> None:
    """Start the group booking API server."""
    parser = argparse.ArgumentParser(description="Run the group booking API.")
    parser.add_argument("--host", default=HOST)
    parser.add_argument("--port", type=int, default=PORT)
    parser.add_argument("--reload", action="store_true", help="Hot-reload on file changes")
    args = parser.parse_args()

    print("=" * 60)
    print("  Group Booking Engine")
    print("=" * 60)
    print(f"  Server   : http://{args.host}:{args.port}")
    print(f"  API docs : http://{args.host}:{args.port}/docs")
    print("=" * 60)
    print("  Press CTRL+C to stop\n")

    # Blocks until CTRL+C
    uvicorn.run(
        "app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
