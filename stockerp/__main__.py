"""
StockERP package entry point: ``python -m stockerp <command>``.
"""

from .cli import app


def main() -> None:
    app(prog_name="stockerp")


if __name__ == "__main__":
    main()
