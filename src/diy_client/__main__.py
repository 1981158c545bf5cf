"""Entry point for ``python -m diy_client``."""

from .cli import main

if __name__ == "__main__":
    main()
