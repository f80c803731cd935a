"""Allow running the client with ``python -m blindrelay``."""

from .main import main

if __name__ == "__main__":
    main()
