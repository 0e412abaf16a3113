"""ObjectVault: personal content-addressable object store."""

__version__ = "0.1.0"
