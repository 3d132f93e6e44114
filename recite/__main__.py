"""Package entry point for ``python -m recite``.

RULES:
- This file must exist for ``python -m recite`` to work
- All argument handling lives in recite.cli
"""

import sys

if __name__ == "__main__":
    from recite.cli import main

    sys.exit(main())
