"""Allow ``python -m commission_sync``."""

from commission_sync.cli import main

if __name__ == "__main__":
    main()
