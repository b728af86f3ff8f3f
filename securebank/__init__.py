"""
SecureBank Core

Backend core of a demo banking application: accounts, deposits, the
transaction journal and authentication sessions, with balance and session
invariants preserved under concurrent access.
"""

__version__ = "1.0.0"
