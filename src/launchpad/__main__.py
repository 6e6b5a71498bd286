"""Module entrypoint for `python -m launchpad`."""

from launchpad.cli import run

if __name__ == "__main__":
    raise SystemExit(run())
