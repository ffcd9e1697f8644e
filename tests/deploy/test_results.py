"""Tests for zeebe_testbed.deploy.results."""

from __future__ import annotations

import json


class TestOverallStatus:
    def test_values(self):
        from zeebe_testbed.deploy.results import OverallStatus

        assert {s.value for s in OverallStatus} == {
            "PASSED", "FAILED", "ERROR", "CANCELLED", "RUNNING", "PENDING",
        }


class TestScenarioResult:
    """Tests for ScenarioResult.mark_complete()."""

    def test_defaults(self):
        from zeebe_testbed.deploy.results import OverallStatus, ScenarioResult

        r = ScenarioResult(run_id="abc")
        assert r.status == OverallStatus.PENDING
        assert r.deploy_key is None
        assert r.completed_at is None
        assert not r.deployed

    def test_passed(self):
        from zeebe_testbed.deploy.results import OverallStatus, ScenarioResult

        r = ScenarioResult(run_id="abc", resources=["a.bpmn"], deploy_key=2251799813685249,
                           artifacts=["raft-partition/1.log"])
        r.mark_complete()
        assert r.status == OverallStatus.PASSED
        assert r.completed_at is not None
        assert r.duration_seconds >= 0
        assert "2251799813685249" in r.summary

    def test_deployed_without_artifacts_fails(self):
        from zeebe_testbed.deploy.results import OverallStatus, ScenarioResult

        r = ScenarioResult(run_id="abc", deploy_key=1)
        r.mark_complete()
        assert r.status == OverallStatus.FAILED
        assert "no artifacts" in r.summary

    def test_error(self):
        from zeebe_testbed.core.errors import StartError, StartFailure
        from zeebe_testbed.deploy.results import OverallStatus, ScenarioResult

        r = ScenarioResult(run_id="abc")
        r.record_error(StartError("late", reason=StartFailure.TIMED_OUT))
        r.mark_complete()
        assert r.status == OverallStatus.ERROR
        assert r.error["reason"] == "TIMED_OUT"
        assert r.summary.startswith("StartError")

    def test_cancelled(self):
        from zeebe_testbed.core.errors import CommandError
        from zeebe_testbed.deploy.results import OverallStatus, ScenarioResult

        r = ScenarioResult(run_id="abc")
        r.record_error(CommandError.cancelled())
        r.mark_complete()
        assert r.status == OverallStatus.CANCELLED

    def test_plain_exception(self):
        from zeebe_testbed.deploy.results import OverallStatus, ScenarioResult

        r = ScenarioResult(run_id="abc")
        r.record_error(RuntimeError("boom"))
        r.mark_complete()
        assert r.error == {"error_type": "RuntimeError", "message": "boom"}
        assert r.status == OverallStatus.ERROR

    def test_explicit_status(self):
        from zeebe_testbed.deploy.results import OverallStatus, ScenarioResult

        r = ScenarioResult(run_id="abc")
        r.mark_complete(OverallStatus.CANCELLED)
        assert r.status == OverallStatus.CANCELLED

    def test_json_roundtrip(self):
        from zeebe_testbed.deploy.results import ScenarioResult

        r = ScenarioResult(run_id="abc", deploy_key=1, artifacts=["x"])
        r.mark_complete()
        data = json.loads(r.model_dump_json())
        assert data["status"] == "PASSED"
        assert ScenarioResult.model_validate(data).status == r.status
