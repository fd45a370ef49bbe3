"""Portal administration bot: session lifecycle, conversations and worklist pipelines."""

__version__ = "0.3.0"
