"""keysync - Encrypted multi-replica sync for keyboard settings and favorites."""

__version__ = "0.1.0"
