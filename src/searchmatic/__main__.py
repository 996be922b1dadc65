"""Allow ``python -m searchmatic``."""

import sys

from searchmatic.cli import main

sys.exit(main())
