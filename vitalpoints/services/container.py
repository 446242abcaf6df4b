"""
Process-wide wiring of the points services

The API server builds one ServiceContainer at startup around the selected
ledger store; route dependencies pull services from it.
"""

from dataclasses import dataclass, field
from typing import Optional
import logging

from vitalpoints.db.store import PointsStore

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """
    Holds the ledger store and builds services from it on first use

    AwardingService shares the container's QueryService so award responses
    and read endpoints compute summaries the same way.
    """

    store: PointsStore

    _awarding_service: Optional[object] = field(default=None, init=False, repr=False)
    _query_service: Optional[object] = field(default=None, init=False, repr=False)

    @property
    def query_service(self):
        if self._query_service is None:
            from vitalpoints.services.query_service import QueryService
            self._query_service = QueryService(self.store)
            logger.debug("[CONTAINER] QueryService built")
        return self._query_service

    @property
    def awarding_service(self):
        if self._awarding_service is None:
            from vitalpoints.services.awarding_service import AwardingService
            self._awarding_service = AwardingService(self.store, self.query_service)
            logger.debug("[CONTAINER] AwardingService built")
        return self._awarding_service


_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    """
    Container built by init_container()

    Raises:
        RuntimeError: Before init_container() or after reset_container()
    """
    if _container is None:
        raise RuntimeError("Points services are not wired yet; call init_container(store) first")
    return _container


def init_container(store: PointsStore) -> ServiceContainer:
    """Replace the process container with a fresh one around `store`"""
    global _container
    _container = ServiceContainer(store=store)
    logger.info(f"[CONTAINER] Services wired to {type(store).__name__}")
    return _container


def reset_container() -> None:
    """Drop the process container (tests, shutdown)"""
    global _container
    _container = None
