"""CloudDrive: multi-tenant virtual filesystem backend."""

__version__ = "1.0.0"
