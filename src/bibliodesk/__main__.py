"""Main entry point for the bibliodesk package."""

from bibliodesk.cli import main

if __name__ == "__main__":
    main()
