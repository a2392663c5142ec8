#!/usr/bin/env python3
"""
Development launcher for autotake.

- Runs the recorder in the foreground with the repository's config.yaml
- q + Enter or Ctrl-C stops the current take cleanly
"""

import sys

from autotake.cli import main

if __name__ == "__main__":
    sys.exit(main())
