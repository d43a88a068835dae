"""
wikiagent - agent conversation orchestration for wiki workspaces.
"""

__version__ = "0.1.0"
__logo__ = "📚"
