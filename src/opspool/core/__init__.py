"""Core runtime modules for opspool."""

__all__ = [
    "backend",
    "backend_numpy",
    "context",
    "exceptions",
    "kinds",
    "pool",
    "shapes",
    "storage",
]
