"""
Cutover Controller: deploy → warm → validate → switch or roll back.

Manifesto:
    Traffic only moves to a new environment after its warmed cache has
    been measured and passed.  Every attempt ends in exactly one of two
    terminal states, ``ACTIVE`` or ``RETIRED``; the routing table is never
    left pointing somewhere ambiguous.

State machine:
    ::

        DEPLOYING ─► WARMING ─► VALIDATING ─┬─ passed ─► CUTTING_OVER ─► ACTIVE
            │           │            │      │                 │
            │           │            │      └─ failed ─┐      │ routing failed
            ▼           ▼            ▼                 ▼      ▼
            └───────────┴────────────┴──────────► ROLLING_BACK ─► RETIRED

    - ``CUTTING_OVER`` is only reachable from ``VALIDATING`` with a passing
      decision, or with an authorized ``ManualOverride``.
    - Any disallowed move raises ``IllegalTransitionError``.
    - ``ROLLING_BACK`` tears down the new environment and leaves the
      existing route alone (restoring it if a failed switch moved it).
    - ``ACTIVE`` schedules teardown of the prior environment after
      ``grace_period_seconds`` so in-flight requests complete.

Guardrails:
    ❌ DON'T: treat an aborted warming job as "good enough"
    ✅ DO: the gate fails any report whose job is not ``Completed``

    ❌ DON'T: force cutover by default
    ✅ DO: ``ManualOverride(authorized_by, reason)`` with
       ``allow_manual_override`` enabled

Tags:
    cutover, state-machine, blue-green, rollback, validation
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from warmspine.core.errors import (
    AuthorizationError,
    IllegalTransitionError,
    ProvisioningFailedError,
    RoutingFailedError,
    WarmspineError,
)
from warmspine.core.logging import LogContext, get_logger
from warmspine.core.models import CutoverDecision, WarmingJob, WarmingReport, utcnow
from warmspine.core.repository import ReportRepository
from warmspine.cutover.collaborators import Environment, EnvironmentProvisioner, TrafficRouter
from warmspine.validation.gate import ValidationGate
from warmspine.warming.orchestrator import WarmingOrchestrator

logger = get_logger(__name__)


class CutoverState(str, Enum):
    DEPLOYING = "deploying"
    WARMING = "warming"
    VALIDATING = "validating"
    CUTTING_OVER = "cutting_over"
    ACTIVE = "active"
    ROLLING_BACK = "rolling_back"
    RETIRED = "retired"

    @property
    def is_terminal(self) -> bool:
        return self in (CutoverState.ACTIVE, CutoverState.RETIRED)


ALLOWED_TRANSITIONS: dict[CutoverState | None, frozenset[CutoverState]] = {
    None: frozenset({CutoverState.DEPLOYING}),
    CutoverState.DEPLOYING: frozenset({CutoverState.WARMING, CutoverState.ROLLING_BACK}),
    CutoverState.WARMING: frozenset({CutoverState.VALIDATING, CutoverState.ROLLING_BACK}),
    CutoverState.VALIDATING: frozenset({CutoverState.CUTTING_OVER, CutoverState.ROLLING_BACK}),
    CutoverState.CUTTING_OVER: frozenset({CutoverState.ACTIVE, CutoverState.ROLLING_BACK}),
    CutoverState.ROLLING_BACK: frozenset({CutoverState.RETIRED}),
    CutoverState.ACTIVE: frozenset(),
    CutoverState.RETIRED: frozenset(),
}


@dataclass(frozen=True)
class ManualOverride:
    """Operator-authorized force-cutover despite a failed decision."""

    authorized_by: str
    reason: str
    requested_at: datetime = field(default_factory=utcnow)


@dataclass
class CutoverResult:
    state: CutoverState
    history: list[CutoverState]
    environment_id: str | None = None
    prior_environment_id: str | None = None
    report: WarmingReport | None = None
    decision: CutoverDecision | None = None
    reasons: list[str] = field(default_factory=list)
    override: ManualOverride | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is CutoverState.ACTIVE

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "history": [s.value for s in self.history],
            "environment_id": self.environment_id,
            "prior_environment_id": self.prior_environment_id,
            "job_id": self.report.job_id if self.report else None,
            "passed": self.decision.passed if self.decision else None,
            "reasons": list(self.reasons),
            "override": (
                {"authorized_by": self.override.authorized_by, "reason": self.override.reason}
                if self.override
                else None
            ),
        }


def _describe(exc: Exception) -> str:
    return exc.message if isinstance(exc, WarmspineError) else str(exc)


def timer_scheduler(delay_seconds: float, func: Callable[[], None]) -> threading.Timer:
    """Run ``func`` once after ``delay_seconds`` on a timer thread."""
    timer = threading.Timer(delay_seconds, func)
    timer.name = "warmspine-teardown"
    timer.start()
    return timer


class CutoverController:
    """Drives one cutover attempt end to end.

    Example:
        controller = CutoverController(
            provisioner, router,
            orchestrator_factory=lambda env: build_orchestrator(env.cache_url),
            gate_factory=lambda env: ValidationGate(thresholds, sampler=...),
            job_factory=lambda: WarmingJob(categories=list(Category)),
            repository=repository,
        )
        result = controller.run()
        assert result.state in (CutoverState.ACTIVE, CutoverState.RETIRED)
    """

    def __init__(
        self,
        provisioner: EnvironmentProvisioner,
        router: TrafficRouter,
        *,
        orchestrator_factory: Callable[[Environment], WarmingOrchestrator],
        gate_factory: Callable[[Environment], ValidationGate],
        job_factory: Callable[[], WarmingJob],
        repository: ReportRepository | None = None,
        grace_period_seconds: float = 300.0,
        allow_manual_override: bool = False,
        scheduler: Callable[[float, Callable[[], None]], Any] = timer_scheduler,
    ):
        self._provisioner = provisioner
        self._router = router
        self._orchestrator_factory = orchestrator_factory
        self._gate_factory = gate_factory
        self._job_factory = job_factory
        self._repository = repository
        self._grace_period = grace_period_seconds
        self._allow_override = allow_manual_override
        self._scheduler = scheduler

        self._state: CutoverState | None = None
        self._history: list[CutoverState] = []
        self._decision: CutoverDecision | None = None
        self._override_in_force = False
        self._orchestrator: WarmingOrchestrator | None = None

    @property
    def state(self) -> CutoverState | None:
        return self._state

    def cancel(self) -> None:
        """Abort the warming step if it is running.  The attempt then rolls back."""
        if self._orchestrator is not None:
            self._orchestrator.cancel()

    # ── State machine ────────────────────────────────────────────────

    def _transition(self, target: CutoverState) -> None:
        if target not in ALLOWED_TRANSITIONS[self._state]:
            raise IllegalTransitionError(self._state.value if self._state else "start", target.value)
        if target is CutoverState.CUTTING_OVER:
            passed = self._decision is not None and self._decision.passed
            if not (passed or self._override_in_force):
                raise IllegalTransitionError(self._state.value, target.value)
        previous = self._state
        self._state = target
        self._history.append(target)
        logger.info(
            "cutover.transition",
            from_state=previous.value if previous else None,
            to_state=target.value,
        )

    # ── Run ──────────────────────────────────────────────────────────

    def run(self, override: ManualOverride | None = None) -> CutoverResult:
        """Run one attempt to ``ACTIVE`` or ``RETIRED``.

        Raises:
            AuthorizationError: ``override`` given but manual override is
                disabled, or the override names nobody.  Nothing is deployed.
            IllegalTransitionError: The controller already ran.
        """
        if self._state is not None:
            raise IllegalTransitionError(self._state.value, CutoverState.DEPLOYING.value)
        if override is not None:
            if not self._allow_override:
                raise AuthorizationError("Manual override is disabled (allow_manual_override=false)")
            if not override.authorized_by.strip() or not override.reason.strip():
                raise AuthorizationError("Manual override requires authorized_by and reason")

        result = CutoverResult(state=CutoverState.DEPLOYING, history=self._history, override=override)

        self._transition(CutoverState.DEPLOYING)
        environment: Environment | None = None
        try:
            result.prior_environment_id = self._router.current_environment()
            environment = self._provisioner.deploy_environment()
        except Exception as exc:
            if not isinstance(exc, (ProvisioningFailedError, RoutingFailedError)):
                logger.exception("cutover.deploy_failed")
            result.reasons.append(f"deploy failed: {_describe(exc)}")
            partial_id = getattr(exc, "environment_id", None)
            return self._roll_back(result, partial_id)

        result.environment_id = environment.id
        with LogContext(environment_id=environment.id):
            self._transition(CutoverState.WARMING)
            try:
                result.report = self._warm(environment)
            except Exception as exc:
                logger.exception("cutover.warming_failed")
                result.reasons.append(f"warming failed: {type(exc).__name__}: {_describe(exc)}")
                return self._roll_back(result, environment.id)

            self._transition(CutoverState.VALIDATING)
            try:
                decision = self._gate_factory(environment).validate(result.report)
                if self._repository is not None:
                    self._repository.save_decision(decision)
            except Exception as exc:
                logger.exception("cutover.validation_failed")
                result.reasons.append(f"validation failed: {type(exc).__name__}: {_describe(exc)}")
                return self._roll_back(result, environment.id)
            self._decision = result.decision = decision

            if not self._decision.passed:
                result.reasons.extend(self._decision.reasons)
                if override is None:
                    return self._roll_back(result, environment.id)
                self._override_in_force = True
                logger.warning(
                    "cutover.manual_override",
                    authorized_by=override.authorized_by,
                    reason=override.reason,
                    failed_reasons=list(self._decision.reasons),
                )

            self._transition(CutoverState.CUTTING_OVER)
            try:
                self._router.switch_traffic(result.prior_environment_id, environment.id)
            except Exception as exc:
                if not isinstance(exc, RoutingFailedError):
                    logger.exception("cutover.switch_failed")
                result.reasons.append(f"traffic switch failed: {_describe(exc)}")
                self._restore_route(result.prior_environment_id, environment.id)
                return self._roll_back(result, environment.id)

            self._transition(CutoverState.ACTIVE)
            result.state = CutoverState.ACTIVE
            self._schedule_prior_teardown(result.prior_environment_id, environment.id)
            return result

    def _warm(self, environment: Environment) -> WarmingReport:
        self._orchestrator = self._orchestrator_factory(environment)
        try:
            report = self._orchestrator.run(self._job_factory())
        finally:
            self._orchestrator = None
        if self._repository is not None:
            self._repository.save_report(report)
        return report

    def _roll_back(self, result: CutoverResult, environment_id: str | None) -> CutoverResult:
        self._transition(CutoverState.ROLLING_BACK)
        if environment_id is not None:
            try:
                self._provisioner.teardown_environment(environment_id)
            except Exception as exc:
                logger.error("cutover.teardown_failed", environment_id=environment_id, error=_describe(exc))
                result.reasons.append(f"teardown of {environment_id} failed: {_describe(exc)}")
        self._transition(CutoverState.RETIRED)
        result.state = CutoverState.RETIRED
        logger.warning("cutover.retired", reasons=list(result.reasons))
        return result

    def _restore_route(self, prior_id: str | None, new_id: str) -> None:
        try:
            if prior_id is not None and self._router.current_environment() == new_id:
                self._router.switch_traffic(new_id, prior_id)
                logger.warning("cutover.route_restored", environment_id=prior_id)
        except Exception as exc:
            logger.error("cutover.route_restore_failed", prior_id=prior_id, error=_describe(exc))

    def _schedule_prior_teardown(self, prior_id: str | None, new_id: str) -> None:
        if prior_id is None or prior_id == new_id:
            return

        def teardown() -> None:
            try:
                self._provisioner.teardown_environment(prior_id)
            except Exception as exc:
                logger.error("cutover.prior_teardown_failed", environment_id=prior_id, error=_describe(exc))

        logger.info("cutover.prior_teardown_scheduled", environment_id=prior_id, delay=self._grace_period)
        self._scheduler(self._grace_period, teardown)


__all__ = [
    "CutoverState",
    "CutoverController",
    "CutoverResult",
    "ManualOverride",
    "ALLOWED_TRANSITIONS",
    "timer_scheduler",
]
