"""Allow ``python -m src.server``."""
from src.server.cli import app

if __name__ == "__main__":
    app()
