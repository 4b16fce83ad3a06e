"""Bridge BLE thermo-hygrometer advertisements to a database or collector API."""

__version__ = "0.1.0"
