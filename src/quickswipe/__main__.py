"""Main entry point for the review bot."""
from quickswipe.app import main

if __name__ == "__main__":
    main()
