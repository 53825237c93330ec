"""CLI entry point for python -m docuvid"""
from docuvid.cli.commands import app

if __name__ == "__main__":
    app()
