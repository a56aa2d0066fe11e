"""Allow ``python -m sdr_finder``."""

from sdr_finder.cli import app

if __name__ == "__main__":
    app()
