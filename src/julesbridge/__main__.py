"""Entry point for ``python -m julesbridge``.

Usage:
    python -m julesbridge serve

    # Drive the bridge from a file of JSON-RPC lines:
    cat requests.jsonl | python -m julesbridge serve
"""

import sys

from julesbridge.cli import main

if __name__ == "__main__":
    sys.exit(main())
