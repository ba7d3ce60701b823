"""cost-ledger: cost-report ingestion into weekly project financial snapshots."""

__version__ = "0.3.0"
