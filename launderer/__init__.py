"""Happy Launderer: laundry pickup and delivery backend and client."""

__version__ = "1.0.0"
