"""Allow running as `python -m diffgate`."""

from .cli import main

if __name__ == "__main__":
    main()
