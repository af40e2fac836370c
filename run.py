#!/usr/bin/env python3
"""Launch the ptystream monitor.

Usage:
    python run.py [config.yaml] [--replay FILE] [--chunk-size N] [--prompt TEXT] [--screen] [--debug] [--trace] [--verbose]
"""

from ptystream.main import cli

if __name__ == "__main__":
    cli()
