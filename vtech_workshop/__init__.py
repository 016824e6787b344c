"""V-Tech workshop management: jobs, parts, client ledger and reports."""

__version__ = "0.3.0"
