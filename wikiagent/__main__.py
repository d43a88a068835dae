"""
Entry point for running wikiagent as a module: python -m wikiagent
"""

from wikiagent.cli.commands import app

if __name__ == "__main__":
    app()
