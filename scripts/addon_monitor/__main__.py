"""Allow running the monitor as ``python -m scripts.addon_monitor``."""

import sys

from scripts.addon_monitor.cli import main

sys.exit(main())
