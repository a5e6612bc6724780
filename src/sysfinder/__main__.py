"""
Entry point for ``python -m sysfinder``.
"""

from .cli import main

if __name__ == "__main__":
    main()
