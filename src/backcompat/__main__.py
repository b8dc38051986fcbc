import sys

from backcompat.cli import main

sys.exit(main())
