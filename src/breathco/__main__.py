"""Entry point for `python -m breathco`."""

from breathco.cli import main

if __name__ == "__main__":
    main()
