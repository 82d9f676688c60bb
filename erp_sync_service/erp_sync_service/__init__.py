"""ERP synchronization worker for the grocery catalog."""

__version__ = "0.1.0"
