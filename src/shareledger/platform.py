"""Platform context — the explicitly constructed execution environment.

Nothing in shareledger reaches for module-level clients or globals. The
ledger and the engine receive one PlatformContext holding:

- the loaded PlatformConfig (operator identity, fee bounds, batch size),
- the injected ComplianceGate and AssetRegistry,
- the Custody fund pools,
- the global pause circuit breaker.

Lifecycle: a context is usable between ``open()`` and ``close()``; it
opens on construction unless told otherwise and works as a context
manager. Mutating entry points call ``guard_mutation()`` before any other
check, so pause is visible everywhere at once. Queries never call it.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from shareledger.collaborators import AssetRegistry, ComplianceGate
from shareledger.config import PlatformConfig
from shareledger.custody import Custody
from shareledger.errors import NotAuthorized, Paused

logger = logging.getLogger(__name__)


class PlatformContext:
    """Execution context shared by OwnershipLedger and DistributionEngine.

    Usage:
        with PlatformContext(config, compliance, registry) as ctx:
            ledger = OwnershipLedger(ctx)
            engine = DistributionEngine(ctx, ledger)
    """

    def __init__(
        self,
        config: PlatformConfig,
        compliance: ComplianceGate,
        registry: AssetRegistry,
        custody: Optional[Custody] = None,
        open_now: bool = True,
    ) -> None:
        self.config = config
        self.compliance = compliance
        self.registry = registry
        self.custody = custody if custody is not None else Custody()
        self._pause_lock = threading.Lock()
        self._paused = False
        self._open = False
        if open_now:
            self.open()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        if self._open:
            raise RuntimeError("Platform context already open")
        self._open = True
        logger.debug("Platform context opened (operator=%s)", self.config.operator_id)

    def close(self) -> None:
        """Close the context. Idempotent."""
        if self._open:
            self._open = False
            logger.debug("Platform context closed")

    def __enter__(self) -> PlatformContext:
        if not self._open:
            self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Roles and circuit breaker
    # ------------------------------------------------------------------

    @property
    def operator_id(self) -> str:
        return self.config.operator_id

    def is_operator(self, party_id: str) -> bool:
        return party_id == self.config.operator_id

    def require_operator(self, party_id: str) -> None:
        if not self.is_operator(party_id):
            raise NotAuthorized(f"{party_id} is not the platform operator")

    @property
    def paused(self) -> bool:
        return self._paused

    def guard_mutation(self) -> None:
        """First check of every mutating entry point."""
        if not self._open:
            raise RuntimeError("Platform context is closed")
        if self._paused:
            raise Paused("Platform is paused")

    def pause(self, caller_id: str) -> None:
        """Engage the circuit breaker. Operator only; idempotent."""
        if not self._open:
            raise RuntimeError("Platform context is closed")
        self.require_operator(caller_id)
        with self._pause_lock:
            if not self._paused:
                self._paused = True
                logger.warning("Platform paused by %s", caller_id)

    def unpause(self, caller_id: str) -> None:
        if not self._open:
            raise RuntimeError("Platform context is closed")
        self.require_operator(caller_id)
        with self._pause_lock:
            if self._paused:
                self._paused = False
                logger.info("Platform unpaused by %s", caller_id)

    def restore_paused(self, paused: bool) -> None:
        """Reinstate a persisted pause flag without an authorization check."""
        self._paused = paused
