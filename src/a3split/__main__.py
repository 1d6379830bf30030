"""
Module entrypoint: `python -m a3split`.
"""

from .cli import main


if __name__ == "__main__":
    raise SystemExit(main())
