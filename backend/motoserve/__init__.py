"""motoserve: booking lifecycle, worker reassignment and cancellation economy."""

__version__ = "1.0.0"
