"""Built-in store clients and version helpers."""
