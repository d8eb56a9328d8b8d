"""Black-box verification of a TTL state store under random updates."""

__version__ = "0.1.0"
