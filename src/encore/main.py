"""Main entry point for the Encore CLI.

Usage:
    python -m encore.main --help
    encore --help  # If installed via pip
"""

from encore.cli import main

if __name__ == "__main__":
    main()
