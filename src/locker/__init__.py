"""
Locker - Time-Locked Liquidity Positions

Lets a position owner hand custody of a concentrated-liquidity position to a
derived lock authority for a fixed duration and reclaim it once the lock
expires, while fees keep accruing to the owner.

Main Components:
- Addressing: Deterministic lock-authority and slot addresses
- Position lists: Dense per-owner position arrays with swap-remove
- Lock registry: Bounded per-owner ledger of locked positions
- Locker: Atomic lock, unlock and fee-claim instructions
- Market: In-memory reference of the AMM engine the locker drives
"""

__version__ = "0.1.0"
__author__ = "Locker Development Team"

__all__ = []
