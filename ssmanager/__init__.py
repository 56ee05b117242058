"""Control-protocol, address and replay-filter helpers for managing shadowsocks servers."""

__version__ = "0.1.0"
__all__ = ["commands", "netutils", "ppbloom"]