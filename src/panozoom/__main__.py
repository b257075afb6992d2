"""Entry point for ``python -m panozoom``."""

from panozoom.preprocess.__main__ import main

if __name__ == "__main__":
    main()
