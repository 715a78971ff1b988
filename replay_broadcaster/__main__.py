"""Package entry point for ``python -m replay_broadcaster``.

Delegates to the CLI's main() and exits with its return code.
"""

import sys

from replay_broadcaster.cli import main

if __name__ == "__main__":
    sys.exit(main())
