"""Console entry point for the tasks-aware MCP server.

Installed as ``tasks-aware-mcp``; ``python src/main.py`` also works from
a checkout.
"""
import sys
from pathlib import Path

# Running as a script puts src/ on the path, not the project root
_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import asyncio

from src.server import main


def run() -> None:
    """Serve over stdio until the client disconnects."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("[Main] Interrupted, shutting down", file=sys.stderr)


if __name__ == "__main__":
    run()
