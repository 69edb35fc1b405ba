"""Allow running as: python -m oncebuild [--build-source DIR] [args...]"""

import sys

from oncebuild.bootstrap import main

if __name__ == "__main__":
    sys.exit(main())
