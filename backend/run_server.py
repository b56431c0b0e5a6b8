#!/usr/bin/env python3
"""
Launch script for the eafgeo backend.

Usage:
    python run_server.py [data_folder] [--port PORT] [--host HOST]

Examples:
    python run_server.py                    # Use default ./data/sessions folder
    python run_server.py /media/fieldwork   # Scan a custom folder
    python run_server.py --min-lock 2       # Keep 2-D fixes too
"""

import argparse
import os
import sys
from pathlib import Path

# Add eafgeo to path
sys.path.insert(0, str(Path(__file__).parent))


def main():
    parser = argparse.ArgumentParser(description="eafgeo backend server")
    parser.add_argument(
        "data_folder",
        nargs="?",
        default="./data/sessions",
        help="Folder scanned for video fragments and telemetry logs (default: ./data/sessions)"
    )
    parser.add_argument("--port", "-p", type=int, default=8000, help="Port to run server on (default: 8000)")
    parser.add_argument(
        "--host", "-H",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1, use 0.0.0.0 for all interfaces)"
    )
    parser.add_argument("--min-lock", type=int, choices=(0, 2, 3), help="Minimum GPS lock level kept")
    parser.add_argument("--max-dop", type=float, help="Maximum dilution of precision kept")
    parser.add_argument("--time-offset", type=float, help="Hours added to absolute timestamps")
    parser.add_argument("--workers", type=int, help="Threads used to scan the data folder")
    parser.add_argument("--debug", "-d", action="store_true", help="Run in debug mode")

    args = parser.parse_args()

    data_folder = Path(args.data_folder)

    print("eafgeo backend")
    print("=" * 40)
    print(f"Data folder: {data_folder.absolute()}")
    print(f"Server: http://{args.host}:{args.port}")
    print("=" * 40)

    if not data_folder.exists():
        print(f"\nWarning: Data folder does not exist: {data_folder}")
        print("You can set it later via POST /folder")

    # Hand settings to the FastAPI lifespan through the environment
    if data_folder.exists():
        os.environ["EAFGEO_DATA_FOLDER"] = str(data_folder)
    for name, value in (
        ("EAFGEO_MIN_LOCK", args.min_lock),
        ("EAFGEO_MAX_DOP", args.max_dop),
        ("EAFGEO_TIME_OFFSET", args.time_offset),
        ("EAFGEO_SCAN_WORKERS", args.workers),
    ):
        if value is not None:
            os.environ[name] = str(value)

    print("\nAPI Endpoints:")
    print("  GET  /                          - Health check")
    print("  GET  /health                    - Detailed health")
    print("  GET  /folder                    - Current folder info")
    print("  POST /folder                    - Set data folder")
    print("  GET  /sessions                  - List sessions")
    print("  GET  /sessions/select           - Select by telemetry, fragment or identity")
    print("  GET  /sessions/{key}            - Session details")
    print("  GET  /sessions/{key}/telemetry  - Assembled telemetry")
    print("  POST /sessions/{key}/geometries - Build geometries (GeoJSON)")
    print("  GET  /annotations/tiers         - List tiers of an .eaf file")
    print("\nStarting server...")

    import uvicorn

    uvicorn.run(
        "eafgeo.main:app",
        host=args.host,
        port=args.port,
        reload=args.debug,
        log_level="info",
    )


if __name__ == "__main__":
    main()
