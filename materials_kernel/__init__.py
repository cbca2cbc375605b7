"""
Materials Kernel

Core of the site materials ledger:
- Per-site inventory levels for steel, cement and diesel
- Append-only transaction ledger (delete is the only removal path)
- Structured logging and typed error codes
- Deterministic time via an injected clock
"""

__version__ = "0.1.0"
