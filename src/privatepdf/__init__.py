"""PrivatePDF backend — local Ollama orchestration for the desktop app."""

__version__ = "0.3.0"
