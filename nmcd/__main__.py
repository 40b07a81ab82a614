"""Allow ``python -m nmcd``."""

from nmcd.cli.main import run

if __name__ == "__main__":
    run()
