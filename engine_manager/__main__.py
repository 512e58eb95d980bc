"""Module entrypoint for `python -m engine_manager`."""

from .cli import main

if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
