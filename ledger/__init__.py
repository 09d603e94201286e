"""
Order ledger package.

Provides:
- Core domain models (Order, Session, OrderCount) and identity keys
- Error taxonomy shared by the decoder, transport and sync pipeline
- Services for endpoints, reconciliation, sessions and statistics
"""

__version__ = "0.1.0"
