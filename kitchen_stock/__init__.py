"""Kitchen Stock - FIFO batch ledger for multi-tenant cloud kitchens."""

__version__ = "0.1.0"
