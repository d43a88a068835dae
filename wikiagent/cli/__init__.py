"""CLI module for wikiagent."""
