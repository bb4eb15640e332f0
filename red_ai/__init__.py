"""red-ai: conversational voice pipeline (prompt → completion → speech)."""

__version__ = "0.1.0"
