"""Concurrent execution of a reconcile plan across backends."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator, Mapping
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field, replace

from sink.backends.base import Backend
from sink.compile import canonical_source
from sink.errors import BackendError, ErrorKind, PolicyError, SinkError
from sink.lockfile.plan import Action, Failure, Outcome, PlanItem, ReconcilePlan, Skipped, Success
from sink.observability import StructuredLogger


@dataclass(frozen=True, slots=True)
class DispatchReport:
    outcomes: tuple[Outcome, ...] = ()
    interrupted: bool = False

    @property
    def succeeded(self) -> tuple[Success, ...]:
        return tuple(outcome for outcome in self.outcomes if isinstance(outcome, Success))

    @property
    def failed(self) -> tuple[Failure, ...]:
        return tuple(outcome for outcome in self.outcomes if isinstance(outcome, Failure))

    @property
    def skipped(self) -> tuple[Skipped, ...]:
        return tuple(outcome for outcome in self.outcomes if isinstance(outcome, Skipped))

    @property
    def ok(self) -> bool:
        return not self.failed and not self.interrupted

    def summary(self) -> str:
        """E.g. ``12 succeeded, 2 failed: GitHub/a/b/x (ReleaseNotFound), Rust/c (Timeout)``."""
        text = f"{len(self.succeeded)} succeeded, {len(self.failed)} failed"
        if self.failed:
            text += ": " + ", ".join(f"{outcome.ref} ({outcome.kind})" for outcome in self.failed)
        if self.skipped:
            text += f"; {len(self.skipped)} skipped: " + ", ".join(
                f"{outcome.ref} ({outcome.kind})" for outcome in self.skipped
            )
        return text


@dataclass(slots=True)
class Dispatcher:
    """Runs pending plan items on a bounded worker pool.

    At most ``jobs`` items are in flight at once. Outcomes are handed to
    ``on_outcome`` on the calling thread as they complete, so a single lock
    writer never sees concurrent updates. Once ``cancel`` is set (or the
    caller is interrupted) no new work starts; in-flight items finish and the
    rest are reported as cancelled.
    """

    backends: Mapping[str, Backend]
    jobs: int = 4
    logger: StructuredLogger = field(default_factory=StructuredLogger)

    def backend_for(self, source: str) -> Backend | None:
        canonical = canonical_source(source)
        for name, backend in self.backends.items():
            if canonical_source(name) == canonical:
                return backend
        return None

    def dispatch(
        self,
        plan: ReconcilePlan,
        *,
        on_outcome: Callable[[Outcome], None] | None = None,
        cancel: threading.Event | None = None,
    ) -> DispatchReport:
        pending = plan.pending()
        cancel = cancel or threading.Event()
        outcomes: dict[int, Outcome] = {}
        interrupted = False

        def record(index: int, outcome: Outcome) -> None:
            outcomes[index] = outcome
            if on_outcome is not None:
                on_outcome(outcome)

        queue: Iterator[tuple[int, PlanItem]] = iter(enumerate(pending))
        with ThreadPoolExecutor(max_workers=self.jobs, thread_name_prefix="sink-worker") as executor:
            in_flight: dict[Future[Outcome], int] = {}

            def fill() -> None:
                while len(in_flight) < self.jobs and not cancel.is_set():
                    nxt = next(queue, None)
                    if nxt is None:
                        return
                    index, item = nxt
                    backend = self.backend_for(item.source)
                    if backend is None:
                        record(index, self._no_backend(item))
                        continue
                    in_flight[executor.submit(self._execute, backend, item)] = index

            while True:
                try:
                    fill()
                    if not in_flight:
                        break
                    done, _ = wait(tuple(in_flight), return_when=FIRST_COMPLETED)
                    for future in done:
                        # Stays in flight until recorded.
                        record(in_flight[future], future.result())
                        del in_flight[future]
                except KeyboardInterrupt:
                    interrupted = True
                    cancel.set()
                    self.logger.log(
                        operation="dispatch",
                        source=None,
                        dependency=None,
                        action=None,
                        message=f"Interrupted; waiting for {len(in_flight)} running item(s).",
                        level="warning",
                    )

        for index, item in enumerate(pending):
            if index not in outcomes:
                record(index, Failure(item=item, kind=ErrorKind.CANCELLED, message="Cancelled before start."))
        return DispatchReport(
            outcomes=tuple(outcomes[index] for index in range(len(pending))),
            interrupted=interrupted or cancel.is_set(),
        )

    def _no_backend(self, item: PlanItem) -> Outcome:
        if item.action is Action.REMOVE:
            message = "No backend for this source; leaving the lock entry in place."
            self._log(item, message, level="warning")
            return Skipped(item=item, kind=ErrorKind.LOCK_CONFLICT, message=message)
        message = f"No backend registered for source `{item.source}`."
        self._log(item, message, level="error")
        return Failure(item=item, kind=ErrorKind.UNKNOWN_SOURCE, message=message)

    def _execute(self, backend: Backend, item: PlanItem) -> Outcome:
        self._log(item, f"{item.action.value} started", level="debug")
        try:
            outcome = self._run(backend, item)
        except SinkError as exc:
            kind = exc.kind or (ErrorKind.NETWORK if isinstance(exc, PolicyError) else ErrorKind.INTERNAL)
            self._log(item, f"{item.action.value} failed: {exc}", level="error", kind=kind)
            return Failure(item=item, kind=kind, message=exc.message)
        except Exception as exc:  # noqa: BLE001
            self._log(item, f"{item.action.value} crashed: {exc!r}", level="error")
            return Failure(item=item, kind=ErrorKind.INTERNAL, message=repr(exc))
        if isinstance(outcome, Success):
            self._log(item, f"{item.action.value} ok ({outcome.entry.version})")
        return outcome

    def _run(self, backend: Backend, item: PlanItem) -> Outcome:
        if item.action is Action.REMOVE and item.locked is not None:
            try:
                backend.remove(item.locked)
            except BackendError as exc:
                if exc.kind is not ErrorKind.ARTIFACT_MISSING:
                    raise
                self._log(item, f"Already absent: {exc.context.get('missing', '')}", level="warning")
            return Success(item=item, entry=item.locked)

        if item.dependency is None:
            raise BackendError("Plan item has no dependency to install.", kind=ErrorKind.INTERNAL)
        entry = backend.install(item.dependency)

        locked = item.locked
        if item.action is Action.INSTALL and locked is not None and locked.fingerprint:
            # Frozen reinstall: content must match what the lock recorded.
            if entry.fingerprint != locked.fingerprint:
                message = "Installed artifacts do not match the locked fingerprint."
                self._log(item, message, level="error", kind=ErrorKind.FINGERPRINT_MISMATCH)
                return Failure(item=item, kind=ErrorKind.FINGERPRINT_MISMATCH, message=message)

        if item.action is Action.UPGRADE and locked is not None:
            stale = sorted(set(locked.artifacts) - set(entry.artifacts))
            if stale:
                try:
                    backend.remove(replace(locked, artifacts=tuple(stale), fingerprint=None))
                except BackendError as exc:
                    self._log(item, f"Could not prune old artifacts: {exc.message}", level="warning")
        return Success(item=item, entry=entry)

    def _log(self, item: PlanItem, message: str, *, level: str = "info", kind: ErrorKind | None = None) -> None:
        source, name = item.key
        self.logger.log(
            operation="dispatch",
            source=source,
            dependency=name,
            action=item.action.value,
            message=message,
            level=level,
            extra={"kind": str(kind)} if kind is not None else None,
        )


__all__ = ["DispatchReport", "Dispatcher"]
