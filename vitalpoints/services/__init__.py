"""
Service Layer Package

Business logic between the HTTP/feature-module callers and the ledger store.

- AwardingService: the single write path (streak, multiplier, ledger, account)
- QueryService: summaries, transaction history, leaderboards
"""

from vitalpoints.services.container import ServiceContainer, get_container, init_container, reset_container

__all__ = [
    "ServiceContainer",
    "get_container",
    "init_container",
    "reset_container",
]
