"""
Run context: the owner registry and failure state of one build run.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Optional, TypeVar

from oncebuild.config import RunConfig
from oncebuild.errors import ConfigurationError, RunAborted
from oncebuild.targets import InvocationKey, Targets

logger = logging.getLogger(__name__)

OwnerT = TypeVar("OwnerT", bound=Targets)


class RunContext:
    """State shared by every target owner of a run.

    Holds the registry of owners keyed by (owner type, construction
    arguments), per-invocation timings and the aggregate failure, if any.
    """

    def __init__(self, config: Optional[RunConfig] = None):
        self.config = config or RunConfig()
        self.timings: dict[str, float] = {}
        self.failure: Optional[BaseException] = None
        self._owners: dict[tuple[Any, ...], Targets] = {}
        self._attached: list[Targets] = []
        self._lock = threading.RLock()

    def adopt(self, owner: OwnerT, label: Optional[str] = None) -> OwnerT:
        """Attach an owner constructed outside the registry (the root owner)."""
        with self._lock:
            owner._context = self
            owner._label = label
            self._attached.append(owner)
        return owner

    def once(self, owner_type: type[OwnerT], *args: Any, **kwargs: Any) -> OwnerT:
        """The single instance of ``owner_type`` for these arguments in this run."""
        key = (owner_type, args, tuple(sorted(kwargs.items())))
        try:
            hash(key)
        except TypeError as e:
            raise ConfigurationError(
                f"{owner_type.__name__}: construction arguments must be hashable"
            ) from e

        with self._lock:
            owner = self._owners.get(key)
            if owner is None:
                logger.debug("constructing %s%r", owner_type.__name__, args)
                owner = owner_type(*args, **kwargs)
                self.adopt(owner, label=owner_type.__name__)
                self._owners[key] = owner
        return owner  # type: ignore[return-value]

    # -- failure handling ----------------------------------------------------

    @property
    def aborted(self) -> bool:
        return self.failure is not None

    def abort(self, failure: BaseException) -> None:
        """Record the aggregate failure; no new invocation starts afterwards."""
        if self.failure is None:
            self.failure = failure

    def check_not_aborted(self, key: InvocationKey) -> None:
        if self.failure is not None:
            raise RunAborted(f"not starting {key}: the build has already failed")

    async def drain(self) -> None:
        """Wait for invocations still in flight; they are never cancelled."""
        while True:
            with self._lock:
                owners = list(self._attached)
            pending = [
                entry.outcome
                for owner in owners
                for entry in owner.invocations()
                if entry.pending
            ]
            if not pending:
                return
            logger.debug("waiting for %d invocations in flight", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)
