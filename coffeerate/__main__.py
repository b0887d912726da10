"""
Run the coffee rating API with uvicorn.
"""

from __future__ import annotations

import argparse
import sys
from typing import Optional, Sequence

import uvicorn

from coffeerate.config import get_settings


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Coffee rating API server")
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Interface to bind",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=8000,
        help="Port to listen on",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Restart on code changes (development only)",
    )
    args = parser.parse_args(argv)

    uvicorn.run(
        "coffeerate.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=get_settings().log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
