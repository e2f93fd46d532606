"""VoiceDesk - multi-tenant dashboard backend for voice AI agents."""

__version__ = "1.0.0"
