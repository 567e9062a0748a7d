"""bacmap - BACnet point normalization and equipment signature auto-assignment."""

__version__ = "0.1.0"
