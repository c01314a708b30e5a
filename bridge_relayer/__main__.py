"""
Entry point for running the relayer as a module.

Usage:
    python -m bridge_relayer
"""

from bridge_relayer.cli import main

if __name__ == "__main__":
    main()
