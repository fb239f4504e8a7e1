"""Tests for the per-target reconciliation state machine."""

import json

import pytest

from runner_fleet.error_handling import ConfigureError, RemovalError, ServiceInstallError
from runner_fleet.provisioning import TargetState, TargetStatus
from tests.mocks.mock_runner import WEB_URL, configure_existing


@pytest.mark.unit
class TestFreshConfigure:
    """Tests for configuring an unconfigured target."""

    def test_configures_and_starts_service(self, reconciler, controller, control_plane, make_targets):
        """Test an empty directory is extracted, configured and serviced."""
        target = make_targets("alpha")[0]

        outcome = reconciler.reconcile(target)

        assert outcome.status == TargetStatus.CONFIGURED
        assert outcome.state == TargetState.CONFIGURED
        assert outcome.warnings == []
        assert (target.directory / "config.sh").exists()
        assert [c.operation for c in controller.calls] == [
            "configure", "install_service", "start_service",
        ]
        assert control_plane.downloads == 1

    def test_configure_arguments(self, reconciler, controller, control_plane, make_targets):
        """Test configure receives a fresh token, unique name and replace semantics."""
        target = make_targets("alpha")[0]

        reconciler.reconcile(target)

        call = controller.calls_for("configure")[0]
        issued = control_plane.tokens("registration")
        assert len(issued) == 1
        assert call.kwargs["token"] == issued[0][2]
        assert call.kwargs["name"] == "buildhost-alpha"
        assert call.kwargs["url"] == f"{WEB_URL}/octo-org/alpha"
        assert call.kwargs["labels"] == ["self-hosted", "linux"]
        assert call.kwargs["work_dir"] == "_work"
        assert call.kwargs["replace"] is True

    def test_existing_install_is_not_re_extracted(self, reconciler, control_plane, make_targets):
        """Test a customized install with an entry point is left alone."""
        target = make_targets("alpha")[0]
        target.directory.mkdir()
        (target.directory / "config.sh").write_text("# customized\n")

        outcome = reconciler.reconcile(target)

        assert outcome.status == TargetStatus.CONFIGURED
        assert (target.directory / "config.sh").read_text() == "# customized\n"
        assert control_plane.downloads == 0

    def test_service_disabled(self, reconciler, controller, make_targets):
        """Test no service operations run when service management is off."""
        reconciler.install_service = False
        target = make_targets("alpha")[0]

        outcome = reconciler.reconcile(target)

        assert outcome.status == TargetStatus.CONFIGURED
        assert controller.calls_for("install_service") == []
        assert controller.calls_for("start_service") == []


@pytest.mark.unit
class TestSkip:
    """Tests for already configured targets without force."""

    def test_configured_target_is_skipped(self, reconciler, controller, control_plane, make_targets):
        """Test a marker without force is a no-op with no network calls."""
        target = make_targets("alpha")[0]
        configure_existing(target.directory)

        outcome = reconciler.reconcile(target)

        assert outcome.status == TargetStatus.SKIPPED
        assert outcome.state == TargetState.CONFIGURED
        assert controller.calls == []
        assert control_plane.requests == []


@pytest.mark.unit
class TestForceReconfigure:
    """Tests for force-removing and reconfiguring a target."""

    def test_force_removes_before_configuring(self, reconciler, controller, control_plane, make_targets):
        """Test the full force path runs cleanup then configure."""
        target = make_targets("alpha")[0]
        configure_existing(target.directory)

        outcome = reconciler.reconcile(target, force=True)

        assert outcome.status == TargetStatus.CONFIGURED
        assert outcome.state == TargetState.CONFIGURED
        assert [c.operation for c in controller.calls] == [
            "stop_service",
            "uninstall_service",
            "remove",
            "configure",
            "install_service",
            "start_service",
        ]
        assert len(control_plane.tokens("remove")) == 1
        assert len(control_plane.tokens("registration")) == 1

    def test_tokens_are_not_reused(self, reconciler, controller, make_targets):
        """Test removal and registration use different tokens."""
        target = make_targets("alpha")[0]
        configure_existing(target.directory)

        reconciler.reconcile(target, force=True)

        remove_token = controller.calls_for("remove")[0].kwargs["token"]
        configure_token = controller.calls_for("configure")[0].kwargs["token"]
        assert remove_token != configure_token

    def test_stale_marker_files_are_deleted(self, reconciler, make_targets):
        """Test marker files from the old registration are gone."""
        target = make_targets("alpha")[0]
        configure_existing(target.directory)

        reconciler.reconcile(target, force=True)

        assert not (target.directory / ".credentials_rsaparams").exists()
        marker = json.loads((target.directory / ".runner").read_text())
        assert marker["agentName"] == "buildhost-alpha"

    def test_removal_token_failure_is_a_warning(self, reconciler, controller, control_plane, make_targets):
        """Test a failed removal token request does not stop reconfiguration."""
        target = make_targets("alpha")[0]
        configure_existing(target.directory)
        control_plane.fail_token("remove", "alpha", 403)

        outcome = reconciler.reconcile(target, force=True)

        assert outcome.status == TargetStatus.CONFIGURED
        assert len(outcome.warnings) == 1
        assert outcome.warnings[0].startswith("remove_registration")
        assert controller.calls_for("remove") == []
        assert len(controller.calls_for("configure")) == 1

    def test_service_cleanup_failures_are_warnings(self, reconciler, controller, make_targets):
        """Test stop/uninstall failures are collected and cleanup continues."""
        target = make_targets("alpha")[0]
        configure_existing(target.directory)
        controller.fail("stop_service", "alpha", ServiceInstallError("not running"))
        controller.fail("remove", "alpha", RemovalError("runner offline"))

        outcome = reconciler.reconcile(target, force=True)

        assert outcome.status == TargetStatus.CONFIGURED
        steps = {s.step: s for s in outcome.steps}
        assert steps["stop_service"].success is False
        assert steps["stop_service"].required is False
        assert steps["uninstall_service"].success is True
        assert steps["remove_registration"].success is False
        assert steps["clear_marker"].success is True
        assert len(outcome.warnings) == 2

    def test_no_service_cleanup_without_service(self, reconciler, controller, make_targets):
        """Test service stop/uninstall are skipped when none is installed."""
        target = make_targets("alpha")[0]
        configure_existing(target.directory, service=False)

        reconciler.reconcile(target, force=True)

        assert controller.calls_for("stop_service") == []
        assert controller.calls_for("uninstall_service") == []


@pytest.mark.unit
class TestTargetFailures:
    """Tests for failures scoped to a single target."""

    def test_registration_token_denied(self, reconciler, controller, control_plane, make_targets):
        """Test an authorization failure is recorded, not raised."""
        target = make_targets("alpha")[0]
        control_plane.fail_token("registration", "alpha", 403)

        outcome = reconciler.reconcile(target)

        assert outcome.status == TargetStatus.FAILED
        assert outcome.state == TargetState.CONFIGURING
        assert "Permission denied" in outcome.reason
        assert controller.calls_for("configure") == []

    def test_configure_error(self, reconciler, controller, make_targets):
        """Test a configure failure leaves no marker behind."""
        target = make_targets("alpha")[0]
        controller.fail("configure", "alpha", ConfigureError("exit 1"))

        outcome = reconciler.reconcile(target)

        assert outcome.status == TargetStatus.FAILED
        assert outcome.reason == "exit 1"
        assert not (target.directory / ".runner").exists()
        assert outcome.steps[-1].step == "configure"
        assert outcome.steps[-1].required is True

    def test_service_install_denied_fails_target(self, reconciler, controller, make_targets):
        """Test a privilege denial on service install is fatal to the target."""
        target = make_targets("alpha")[0]
        controller.fail("install_service", "alpha", ServiceInstallError("must run as sudo"))

        outcome = reconciler.reconcile(target)

        assert outcome.status == TargetStatus.FAILED
        assert outcome.state == TargetState.CONFIGURED
        assert "sudo" in outcome.reason
        assert controller.calls_for("start_service") == []

    def test_corrupt_archive_is_configure_error(self, reconciler, control_plane, make_targets):
        """Test an unreadable package fails the target."""
        control_plane.archive = b"not a tarball"
        target = make_targets("alpha")[0]

        outcome = reconciler.reconcile(target)

        assert outcome.status == TargetStatus.FAILED
        assert "Failed to extract" in outcome.reason


@pytest.mark.unit
class TestDeprovision:
    """Tests for standalone deprovisioning."""

    def test_deprovision_configured_target(self, reconciler, controller, make_targets):
        """Test deprovision removes the registration and service."""
        target = make_targets("alpha")[0]
        configure_existing(target.directory)

        outcome = reconciler.deprovision(target)

        assert outcome.status == TargetStatus.REMOVED
        assert outcome.state == TargetState.UNCONFIGURED
        assert not (target.directory / ".runner").exists()
        assert not (target.directory / ".service").exists()
        assert controller.calls_for("configure") == []

    def test_deprovision_unconfigured_target(self, reconciler, control_plane, make_targets):
        """Test deprovision of an unconfigured target is a no-op."""
        target = make_targets("alpha")[0]

        outcome = reconciler.deprovision(target)

        assert outcome.status == TargetStatus.SKIPPED
        assert control_plane.requests == []


@pytest.mark.unit
class TestInspect:
    """Tests for local status reporting."""

    def test_inspect_reports_local_state(self, reconciler, make_targets):
        """Test inspect reflects marker, service and entry point presence."""
        alpha, beta = make_targets("alpha", "beta")
        configure_existing(alpha.directory)

        assert reconciler.inspect(alpha)["state"] == "configured"
        assert reconciler.inspect(alpha)["service_installed"] is True
        assert reconciler.inspect(beta) == {
            "target": "beta",
            "directory": str(beta.directory),
            "state": "unconfigured",
            "extracted": False,
            "service_installed": False,
            "registration_name": "buildhost-beta",
        }
