"""Live, reconciled control of AEG RX9 / Electrolux Pure i9 robot vacuums."""

__version__ = "1.0.0"
