"""Allow running as ``python -m bookclub.companion``."""

from .cli import main

if __name__ == "__main__":
    main()
