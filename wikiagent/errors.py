"""Exceptions raised by wikiagent."""


class WikiAgentError(Exception):
    """Base class for wikiagent errors."""


class PluginConfigError(WikiAgentError, ValueError):
    """Raised when a plugin configuration fails validation in strict mode."""
