"""Allow running the import tool with python -m importer."""

import sys

from .cli import main

sys.exit(main())
