"""Provider Gateway — resilient outbound calls to interchangeable vendors."""

__version__ = "0.1.0"
