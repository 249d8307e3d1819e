#!/usr/bin/env python3
"""Launch the offline stretcher from the project root.

Usage:
    uv run python main.py input.wav output.wav [--stretch 1.5] [...]
    uv run python -m stretch.audio.render input.wav output.wav   # same thing
"""

import sys

if __name__ == "__main__":
    from stretch.audio.render import main
    sys.exit(main())
