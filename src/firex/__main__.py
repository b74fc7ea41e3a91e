"""Main entry point for ``python -m firex``."""

from .cli import main


if __name__ == "__main__":
    main()
