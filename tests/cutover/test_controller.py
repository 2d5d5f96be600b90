"""Tests for warmspine.cutover.controller."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from warmspine.core.errors import (
    AuthorizationError,
    CacheStoreUnavailableError,
    ConnectivityError,
    IllegalTransitionError,
    ProvisioningFailedError,
    RoutingFailedError,
)
from warmspine.core.models import (
    CacheTelemetry,
    Category,
    CategoryStats,
    CutoverDecision,
    JobStatus,
    WarmingJob,
    WarmingReport,
    utcnow,
)
from warmspine.cutover.collaborators import Environment, StaticTrafficRouter
from warmspine.cutover.controller import (
    ALLOWED_TRANSITIONS,
    CutoverController,
    CutoverState,
    ManualOverride,
)

S = CutoverState


def report(job_id: str = "job-1") -> WarmingReport:
    now = utcnow()
    return WarmingReport(
        job_id=job_id,
        status=JobStatus.COMPLETED,
        started_at=now - timedelta(seconds=1),
        completed_at=now,
        batch_size=50,
        max_retries=3,
        categories=(CategoryStats(category=Category.CATALOG, attempted=1, succeeded=1),),
        telemetry=CacheTelemetry(total_keys=1, memory_used_bytes=1, fragmentation_ratio=1.0),
    )


class Harness:
    """Controller wired to mocks; tweak the mocks before ``build()``."""

    def __init__(self, *, passed: bool = True, active: str | None = "blue", **controller_kwargs):
        self.provisioner = MagicMock()
        self.provisioner.deploy_environment.return_value = Environment(id="green", cache_url="redis://green")
        self.router = StaticTrafficRouter(active=active)
        self.orchestrator = MagicMock()
        self.orchestrator.run.return_value = report()
        self.gate = MagicMock()
        self.gate.validate.side_effect = lambda r: (
            CutoverDecision(job_id=r.job_id, passed=True)
            if passed
            else CutoverDecision(job_id=r.job_id, passed=False, reasons=("total_keys 1 below min_total_keys 200",))
        )
        self.repository = MagicMock()
        self.scheduled: list[tuple[float, object]] = []
        self.controller_kwargs = controller_kwargs

    def build(self) -> CutoverController:
        return CutoverController(
            self.provisioner,
            self.router,
            orchestrator_factory=lambda env: self.orchestrator,
            gate_factory=lambda env: self.gate,
            job_factory=lambda: WarmingJob(categories=[Category.CATALOG]),
            repository=self.repository,
            scheduler=lambda delay, fn: self.scheduled.append((delay, fn)),
            **self.controller_kwargs,
        )


class TestTransitionTable:
    def test_terminal_states_have_no_exits(self):
        assert ALLOWED_TRANSITIONS[S.ACTIVE] == frozenset()
        assert ALLOWED_TRANSITIONS[S.RETIRED] == frozenset()

    def test_every_non_terminal_state_can_roll_back(self):
        for state in (S.DEPLOYING, S.WARMING, S.VALIDATING, S.CUTTING_OVER):
            assert S.ROLLING_BACK in ALLOWED_TRANSITIONS[state]

    def test_illegal_transition(self):
        controller = Harness().build()
        with pytest.raises(IllegalTransitionError):
            controller._transition(S.WARMING)

    def test_cutting_over_needs_passing_decision(self):
        controller = Harness().build()
        for state in (S.DEPLOYING, S.WARMING, S.VALIDATING):
            controller._transition(state)
        with pytest.raises(IllegalTransitionError):
            controller._transition(S.CUTTING_OVER)


class TestHappyPath:
    def test_active(self):
        h = Harness(grace_period_seconds=60)
        result = h.build().run()
        assert result.state is S.ACTIVE
        assert result.succeeded
        assert result.history == [S.DEPLOYING, S.WARMING, S.VALIDATING, S.CUTTING_OVER, S.ACTIVE]
        assert result.prior_environment_id == "blue"
        assert result.environment_id == "green"
        assert h.router.switches == [("blue", "green")]
        h.repository.save_report.assert_called_once()
        h.repository.save_decision.assert_called_once_with(result.decision)

    def test_prior_teardown_after_grace_period(self):
        h = Harness(grace_period_seconds=60)
        h.build().run()
        assert len(h.scheduled) == 1
        delay, teardown = h.scheduled[0]
        assert delay == 60
        h.provisioner.teardown_environment.assert_not_called()
        teardown()
        h.provisioner.teardown_environment.assert_called_once_with("blue")

    def test_first_cutover_has_nothing_to_tear_down(self):
        h = Harness(active=None)
        result = h.build().run()
        assert result.state is S.ACTIVE
        assert h.scheduled == []
        assert h.router.switches == [(None, "green")]

    def test_runs_once(self):
        controller = Harness().build()
        controller.run()
        with pytest.raises(IllegalTransitionError):
            controller.run()


class TestRollBack:
    def test_failed_validation_retires(self):
        h = Harness(passed=False)
        result = h.build().run()
        assert result.state is S.RETIRED
        assert result.history == [S.DEPLOYING, S.WARMING, S.VALIDATING, S.ROLLING_BACK, S.RETIRED]
        assert result.reasons == ["total_keys 1 below min_total_keys 200"]
        assert h.router.switches == []
        assert h.router.current_environment() == "blue"
        h.provisioner.teardown_environment.assert_called_once_with("green")

    def test_deploy_failure(self):
        h = Harness()
        h.provisioner.deploy_environment.side_effect = ProvisioningFailedError("quota exceeded")
        result = h.build().run()
        assert result.state is S.RETIRED
        assert result.history == [S.DEPLOYING, S.ROLLING_BACK, S.RETIRED]
        assert result.reasons == ["deploy failed: quota exceeded"]
        h.provisioner.teardown_environment.assert_not_called()

    def test_partial_deploy_is_torn_down(self):
        h = Harness()
        h.provisioner.deploy_environment.side_effect = ProvisioningFailedError("timeout", environment_id="half")
        h.build().run()
        h.provisioner.teardown_environment.assert_called_once_with("half")

    def test_warming_failure(self):
        h = Harness()
        h.orchestrator.run.side_effect = ConnectivityError("Preflight failed: cache store unreachable")
        result = h.build().run()
        assert result.state is S.RETIRED
        assert S.VALIDATING not in result.history
        assert result.reasons == ["warming failed: ConnectivityError: Preflight failed: cache store unreachable"]
        h.provisioner.teardown_environment.assert_called_once_with("green")

    def test_switch_failure_restores_route(self):
        h = Harness()
        h.router = MagicMock()
        h.router.current_environment.side_effect = ["blue", "green"]
        h.router.switch_traffic.side_effect = [RoutingFailedError("lb timeout"), None]
        result = h.build().run()
        assert result.state is S.RETIRED
        assert result.history[-3:] == [S.CUTTING_OVER, S.ROLLING_BACK, S.RETIRED]
        assert h.router.switch_traffic.call_args_list[1].args == ("green", "blue")
        h.provisioner.teardown_environment.assert_called_once_with("green")

    def test_teardown_failure_still_retires(self):
        h = Harness(passed=False)
        h.provisioner.teardown_environment.side_effect = ProvisioningFailedError("api down")
        result = h.build().run()
        assert result.state is S.RETIRED
        assert result.reasons[-1] == "teardown of green failed: api down"

    def test_decision_not_persisted_retires(self):
        h = Harness()
        h.repository.save_decision.side_effect = RuntimeError("state database is down")
        result = h.build().run()
        assert result.state is S.RETIRED
        assert result.history == [S.DEPLOYING, S.WARMING, S.VALIDATING, S.ROLLING_BACK, S.RETIRED]
        assert result.reasons == ["validation failed: RuntimeError: state database is down"]
        assert h.router.current_environment() == "blue"
        h.provisioner.teardown_environment.assert_called_once_with("green")

    def test_gate_error_retires(self):
        h = Harness()
        h.gate.validate.side_effect = CacheStoreUnavailableError("sampler lost the connection")
        result = h.build().run()
        assert result.state is S.RETIRED
        assert result.decision is None
        assert result.reasons == ["validation failed: CacheStoreUnavailableError: sampler lost the connection"]
        h.provisioner.teardown_environment.assert_called_once_with("green")

    def test_unexpected_deploy_error_retires(self):
        h = Harness()
        h.provisioner.deploy_environment.side_effect = KeyError("cache_url")
        result = h.build().run()
        assert result.state is S.RETIRED
        assert result.history == [S.DEPLOYING, S.ROLLING_BACK, S.RETIRED]
        assert result.reasons == ["deploy failed: 'cache_url'"]

    def test_unexpected_teardown_error_still_retires(self):
        h = Harness(passed=False)
        h.provisioner.teardown_environment.side_effect = RuntimeError("boom")
        result = h.build().run()
        assert result.state is S.RETIRED
        assert result.reasons[-1] == "teardown of green failed: boom"


class TestManualOverride:
    def test_override_forces_cutover(self):
        h = Harness(passed=False, allow_manual_override=True)
        override = ManualOverride(authorized_by="oncall@example.com", reason="incident 42")
        result = h.build().run(override)
        assert result.state is S.ACTIVE
        assert result.override == override
        assert result.reasons == ["total_keys 1 below min_total_keys 200"]
        assert result.to_dict()["override"] == {"authorized_by": "oncall@example.com", "reason": "incident 42"}

    def test_override_disabled(self):
        h = Harness(passed=False)
        with pytest.raises(AuthorizationError):
            h.build().run(ManualOverride(authorized_by="me", reason="why not"))
        h.provisioner.deploy_environment.assert_not_called()

    def test_override_needs_a_name(self):
        h = Harness(allow_manual_override=True)
        with pytest.raises(AuthorizationError):
            h.build().run(ManualOverride(authorized_by="  ", reason="x"))

    def test_override_unused_when_validation_passes(self):
        h = Harness(passed=True, allow_manual_override=True)
        result = h.build().run(ManualOverride(authorized_by="me", reason="just in case"))
        assert result.state is S.ACTIVE
        assert result.reasons == []


class TestCancel:
    def test_cancel_forwards_to_running_orchestrator(self):
        h = Harness()
        controller = h.build()

        def run_job(job):
            controller.cancel()
            return report(job.job_id)

        h.orchestrator.run.side_effect = run_job
        controller.run()
        h.orchestrator.cancel.assert_called_once()

    def test_cancel_when_idle_is_noop(self):
        Harness().build().cancel()
