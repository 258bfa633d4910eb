import threading

from sink.backends import InProcessBackend
from sink.dispatch import Dispatcher
from sink.errors import BackendError, ErrorKind
from sink.lockfile import (
    Action,
    Failure,
    LockEntry,
    Lockfile,
    Outcome,
    PlanItem,
    ReconcilePlan,
    Skipped,
    Success,
    reconcile,
)
from sink.models import ResolvedDependency
from sink.observability import StructuredLogger


def _dep(name: str, version: str | None = None, source: str = "Python") -> ResolvedDependency:
    return ResolvedDependency(source=source, name=name, qualified_name=name, version=version, group="default")


def test_dispatch_returns_outcomes_in_plan_order(inprocess_backend: InProcessBackend) -> None:
    inprocess_backend.delay = 0.01
    plan = reconcile([_dep("requests", "~2.30"), _dep("numpy"), _dep("flask", "1.0")], Lockfile())

    report = Dispatcher(backends={"python": inprocess_backend}, jobs=3).dispatch(plan)

    assert [outcome.ref for outcome in report.outcomes] == ["Python/requests", "Python/numpy", "Python/flask"]
    assert [outcome.entry.version for outcome in report.succeeded] == ["2.31.0", "1.26.4", "1.0"]
    assert report.ok


def test_dispatch_respects_the_jobs_bound() -> None:
    backend = InProcessBackend(delay=0.02)
    plan = reconcile([_dep(f"pkg{index}", "1.0") for index in range(8)], Lockfile())

    report = Dispatcher(backends={"python": backend}, jobs=2).dispatch(plan)

    assert len(report.succeeded) == 8
    assert 1 <= backend.max_active <= 2


def test_failures_are_isolated_per_entry(inprocess_backend: InProcessBackend) -> None:
    inprocess_backend.failures["numpy"] = ErrorKind.NETWORK
    plan = reconcile([_dep("requests"), _dep("numpy"), _dep("serde", ">5")], Lockfile())

    report = Dispatcher(backends={"py": inprocess_backend}).dispatch(plan)

    assert [type(outcome) for outcome in report.outcomes] == [Success, Failure, Failure]
    assert [outcome.kind for outcome in report.failed] == [ErrorKind.NETWORK, ErrorKind.NO_MATCHING_VERSION]
    assert report.summary() == (
        "1 succeeded, 2 failed: Python/numpy (Network), Python/serde (NoMatchingVersion)"
    )
    assert not report.ok


def test_malformed_constraint_fails_only_its_entry(inprocess_backend: InProcessBackend) -> None:
    plan = reconcile([_dep("requests", ">>2"), _dep("numpy")], Lockfile())

    report = Dispatcher(backends={"python": inprocess_backend}).dispatch(plan)

    assert report.failed[0].kind is ErrorKind.MALFORMED_CONSTRAINT
    assert len(report.succeeded) == 1


def test_unknown_source_fails_and_orphan_removal_is_skipped() -> None:
    orphan = LockEntry(source="Go", name="golangci-lint", version="1.55.0")
    plan = ReconcilePlan(
        items=(
            PlanItem(action=Action.INSTALL, dependency=_dep("lint", source="Go")),
            PlanItem(action=Action.REMOVE, locked=orphan),
        )
    )

    report = Dispatcher(backends={}).dispatch(plan)

    install, removal = report.outcomes
    assert isinstance(install, Failure) and install.kind is ErrorKind.UNKNOWN_SOURCE
    assert isinstance(removal, Skipped) and removal.kind is ErrorKind.LOCK_CONFLICT


def test_removing_already_absent_artifacts_counts_as_success() -> None:
    backend = InProcessBackend()
    entry = LockEntry(source="Python", name="requests", version="2.31.0")
    logger = StructuredLogger()
    plan = ReconcilePlan(items=(PlanItem(action=Action.REMOVE, locked=entry),))

    report = Dispatcher(backends={"python": backend}, logger=logger).dispatch(plan)

    assert isinstance(report.outcomes[0], Success)
    assert any(record["level"] == "warning" for record in logger.records_for_dependency("Python/requests"))


def test_upgrade_prunes_artifacts_no_longer_installed() -> None:
    removed: list[LockEntry] = []

    class Recording(InProcessBackend):
        def install(self, dependency: ResolvedDependency) -> LockEntry:
            return LockEntry(source="GitHub", name="o/r/*", version="v2", artifacts=("bin/tool-v2",))

        def remove(self, entry: LockEntry) -> None:
            removed.append(entry)

    locked = LockEntry(source="GitHub", name="o/r/*", version="v1", artifacts=("bin/tool-v1",), fingerprint="sha256:x")
    plan = ReconcilePlan(items=(PlanItem(action=Action.UPGRADE, dependency=_dep("o/r/*", source="GitHub"), locked=locked),))

    report = Dispatcher(backends={"github": Recording()}).dispatch(plan)

    assert report.ok
    assert [entry.artifacts for entry in removed] == [("bin/tool-v1",)]


def test_frozen_reinstall_checks_fingerprint() -> None:
    class Drifting(InProcessBackend):
        def install(self, dependency: ResolvedDependency) -> LockEntry:
            return LockEntry(source="GitHub", name="o/r/a", version="v1", artifacts=("a",), fingerprint="sha256:new")

    locked = LockEntry(source="GitHub", name="o/r/a", version="v1", artifacts=("a",), fingerprint="sha256:old")
    dependency = _dep("o/r/a", source="GitHub").pinned("v1")
    plan = ReconcilePlan(items=(PlanItem(action=Action.INSTALL, dependency=dependency, locked=locked),))

    report = Dispatcher(backends={"github": Drifting()}).dispatch(plan)

    assert report.failed[0].kind is ErrorKind.FINGERPRINT_MISMATCH


def test_on_outcome_runs_on_the_dispatching_thread(inprocess_backend: InProcessBackend) -> None:
    threads: set[str] = set()
    plan = reconcile([_dep("requests"), _dep("numpy")], Lockfile())

    Dispatcher(backends={"python": inprocess_backend}, jobs=2).dispatch(
        plan, on_outcome=lambda outcome: threads.add(threading.current_thread().name)
    )

    assert threads == {threading.current_thread().name}


def test_cancel_stops_new_work_and_reports_cancelled() -> None:
    cancel = threading.Event()
    backend = InProcessBackend()
    plan = reconcile([_dep(f"pkg{index}", "1.0") for index in range(4)], Lockfile())

    def stop_after_first(outcome: object) -> None:
        cancel.set()

    report = Dispatcher(backends={"python": backend}, jobs=1).dispatch(
        plan, on_outcome=stop_after_first, cancel=cancel
    )

    assert report.interrupted
    assert len(report.succeeded) == 1
    assert [outcome.kind for outcome in report.failed] == [ErrorKind.CANCELLED] * 3
    assert len(backend.calls) == 1


def test_interrupt_while_recording_still_persists_the_outcome() -> None:
    backend = InProcessBackend()
    plan = reconcile([_dep(f"pkg{index}", "1.0") for index in range(3)], Lockfile())
    persisted: list[Outcome] = []
    interrupted_at: list[str] = []

    def interrupt_once(outcome: Outcome) -> None:
        if not interrupted_at:
            interrupted_at.append(outcome.ref)
            raise KeyboardInterrupt
        persisted.append(outcome)

    report = Dispatcher(backends={"python": backend}, jobs=1).dispatch(plan, on_outcome=interrupt_once)

    assert report.interrupted
    assert [outcome.ref for outcome in report.succeeded] == ["Python/pkg0"]
    assert interrupted_at == ["Python/pkg0"]
    assert [outcome.ref for outcome in persisted if isinstance(outcome, Success)] == ["Python/pkg0"]
    assert [outcome.kind for outcome in report.failed] == [ErrorKind.CANCELLED] * 2
    assert len(backend.calls) == 1


def test_unexpected_backend_exception_becomes_internal_failure() -> None:
    class Broken(InProcessBackend):
        def install(self, dependency: ResolvedDependency) -> LockEntry:
            raise RuntimeError("boom")

    plan = reconcile([_dep("requests")], Lockfile())
    report = Dispatcher(backends={"python": Broken()}).dispatch(plan)

    assert report.failed[0].kind is ErrorKind.INTERNAL


def test_backend_errors_keep_their_kind() -> None:
    class Missing(InProcessBackend):
        def install(self, dependency: ResolvedDependency) -> LockEntry:
            raise BackendError("no such repo", kind=ErrorKind.REPOSITORY_NOT_FOUND)

    plan = reconcile([_dep("o/r/x", source="GitHub")], Lockfile())
    report = Dispatcher(backends={"gh": Missing()}).dispatch(plan)

    assert report.failed[0].kind is ErrorKind.REPOSITORY_NOT_FOUND
    assert report.failed[0].message == "no such repo"
