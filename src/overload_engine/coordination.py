"""Single-flight, cancellable recomputation per logical owner.

Triggers for the same owner either join the computation already running
(same input token) or supersede it (fresher token). A superseded
computation is cancelled cooperatively and its result is never committed.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Generic, Hashable, TypeVar

from overload_engine.exceptions import ComputationCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation flag checked by long-running computations."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ComputationCancelled("Computation superseded by fresher input")


@dataclass
class _Flight(Generic[T]):
    input_token: Hashable
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    done: threading.Event = field(default_factory=threading.Event)
    result: T | None = None
    error: BaseException | None = None


class RecomputeCoordinator:
    """At most one running recompute per owner key.

    Usage:
        coordinator = RecomputeCoordinator()
        cache = coordinator.run(
            owner="analysis",
            input_token=activities_hash(activities),
            compute=lambda token: manager.update(..., cancel_token=token),
            commit=store.save,
        )
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._flights: dict[Hashable, _Flight] = {}

    def is_running(self, owner: Hashable) -> bool:
        with self._lock:
            return owner in self._flights

    def run(
        self,
        owner: Hashable,
        input_token: Hashable,
        compute: Callable[[CancellationToken], T],
        commit: Callable[[T], None] | None = None,
    ) -> T:
        """Run ``compute`` for ``owner`` unless an equivalent run is in flight.

        Args:
            owner: Logical owner of the persisted state (e.g. one user's plan).
            input_token: Identity of the inputs; equal tokens coalesce.
            compute: Work to run; receives the token it must poll.
            commit: Called with the result, only if not superseded.

        Returns:
            The computed (or joined) result.

        Raises:
            ComputationCancelled: If this run was superseded before committing.
        """
        with self._lock:
            current = self._flights.get(owner)
            if current is not None and current.input_token == input_token:
                joined = current
                flight = None
            else:
                joined = None
                previous = current
                flight = _Flight(input_token=input_token)
                self._flights[owner] = flight
                if previous is not None:
                    logger.info("Superseding running recompute for %r", owner)
                    previous.cancel_token.cancel()

        if joined is not None:
            logger.debug("Joining running recompute for %r", owner)
            return self._await(joined)

        # The superseded run must stop before this one starts.
        if previous is not None:
            previous.done.wait()

        try:
            flight.cancel_token.raise_if_cancelled()
            result = compute(flight.cancel_token)
            with self._lock:
                flight.cancel_token.raise_if_cancelled()
                if commit is not None:
                    commit(result)
            flight.result = result
            return result
        except BaseException as exc:
            flight.error = exc
            raise
        finally:
            with self._lock:
                if self._flights.get(owner) is flight:
                    del self._flights[owner]
            flight.done.set()

    @staticmethod
    def _await(flight: _Flight[T]) -> T:
        flight.done.wait()
        if flight.error is not None:
            raise flight.error
        return flight.result
