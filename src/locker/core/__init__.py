"""
Locker Core Module

Core functionality for position locking including:
- Account store with atomic transactions
- Position lists and lock registries
- Lock/unlock protocol and fee-claim delegation
- Signature-based authorization
"""

__all__ = []
