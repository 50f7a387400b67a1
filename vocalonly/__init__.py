"""VocalOnly: pull the vocal track out of a full mix using its instrumental version."""
__version__ = "0.1.0"
