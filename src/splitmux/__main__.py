"""Module entrypoint for `python -m splitmux`."""

from splitmux.cli import run

if __name__ == "__main__":
    raise SystemExit(run())
