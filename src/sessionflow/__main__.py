"""Allow ``python -m sessionflow``; the detached push worker runs this way."""

from .cli import main

if __name__ == "__main__":
    main()
