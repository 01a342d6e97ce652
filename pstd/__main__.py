import sys

from pstd.cli import main

if __name__ == "__main__":
    sys.exit(main())
