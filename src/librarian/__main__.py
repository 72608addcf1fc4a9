"""Main entry point for the librarian package."""

from librarian.cli import main

if __name__ == "__main__":
    main()
