"""Trip odometer ledger: continuity, tank-to-tank mileage and cascade corrections."""

__version__ = "0.1.0"
