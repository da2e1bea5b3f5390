"""Run dailybak: python -m dailybak"""

import sys

from dailybak.cli import main

if __name__ == "__main__":
    sys.exit(main())
