"""Entry point for running meshrelay as a module: python -m meshrelay"""

from meshrelay.cli.commands import app

if __name__ == "__main__":
    app()
