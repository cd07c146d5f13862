"""Off-chain clients for the memo-token program family."""

__version__ = "0.3.0"
