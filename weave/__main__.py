"""Entry point for ``python -m weave``."""

from weave.main import main

if __name__ == "__main__":
    raise SystemExit(main())
