"""Registration lifecycle: register on start, deregister on destroy."""

import logging
import threading
from typing import Protocol

from .registry import ServiceInfo, ServiceRegistryClient

logger = logging.getLogger(__name__)


class Destroyable(Protocol):
    """Anything owning a registration that can be torn down."""

    def destroy(self) -> None:
        ...


class AutoServiceRegistration:
    """Owns this instance's entry in the service registry.

    ``start()`` registers once; ``stop()``/``destroy()`` deregister once.
    Calls on a registration that is not running are no-ops, so the HTTP
    endpoint and the signal handler can both call ``destroy()`` safely.
    Client errors propagate and leave the running flag untouched.
    """

    def __init__(
        self,
        client: ServiceRegistryClient,
        service_info: ServiceInfo,
        enabled: bool = True,
    ):
        self.client = client
        self.service_info = service_info
        self.enabled = enabled
        self._running = False
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if not self.enabled:
            logger.info("Registration disabled, %s not registered", self.service_info.service_id)
            return
        with self._lock:
            if self._running:
                return
            self.client.register_service(self.service_info)
            self._running = True
        logger.info(
            "Registered %s (%s:%s) with registry",
            self.service_info.service_id, self.service_info.host, self.service_info.port,
        )

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                logger.debug("%s not registered, nothing to deregister", self.service_info.service_id)
                return
            self.client.deregister_service(self.service_info.service_id)
            self._running = False
        logger.info("Deregistered %s from registry", self.service_info.service_id)

    def destroy(self) -> None:
        self.stop()
