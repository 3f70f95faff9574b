"""Usage aggregation and billing API for Virtuozzo Hybrid Infrastructure clusters."""

__version__ = "0.1.0"
