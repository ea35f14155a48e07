"""
Run the First Record Finder HTTP API.

Usage:
    python -m first_record --host 0.0.0.0 --port 8765
"""

import argparse
import logging

from first_record.api.server import run_api_server


def main() -> None:
    parser = argparse.ArgumentParser(description="First Record Finder HTTP API Server")
    parser.add_argument("--host", default=None, help="Host to bind to (default: FIRST_RECORD_API_HOST or 127.0.0.1)")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to (default: FIRST_RECORD_API_PORT or 8765)")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    run_api_server(host=args.host, port=args.port)


if __name__ == "__main__":
    main()
