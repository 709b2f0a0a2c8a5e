"""Entry point for python -m blobgate."""

import sys

from blobgate.cli import main

sys.exit(main())
