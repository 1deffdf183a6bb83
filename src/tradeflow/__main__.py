"""Entry point for running tradeflow as a module.

Usage:
    python -m tradeflow validate-config
    python -m tradeflow --help
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env before any other imports that need env vars

from tradeflow.cli import main  # noqa: E402

if __name__ == "__main__":
    main()
