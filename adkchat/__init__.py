"""adkchat -- streaming chat client for Agent Development Kit style backends."""

__version__ = "0.1.0"
