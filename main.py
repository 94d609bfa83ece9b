"""
Entry point: validate, analyze and export paper rocket designs.

Usage:
    python main.py validate design.json
    python main.py analyze design.json
    python main.py export design.json --format pdf -o rocket.pdf

Same as the installed ``rokit`` command.
"""

import sys

from rocket_templates.cli import main

if __name__ == "__main__":
    sys.exit(main())
