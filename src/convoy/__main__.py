"""Allow ``python -m convoy``."""

from convoy import main

if __name__ == "__main__":
    main()
