"""End-to-end deploy scenarios against a real broker container.

Requires a Docker daemon and pulls the broker image on first run::

    pytest -m docker tests/integration/test_deploy_workflow.py -v
"""

from __future__ import annotations

import tempfile

import pytest

from zeebe_testbed.client.context import CommandContext
from zeebe_testbed.core.settings import TestbedSettings
from zeebe_testbed.deploy.container import is_docker_available
from zeebe_testbed.deploy.results import OverallStatus
from zeebe_testbed.deploy.testbed import broker_testbed, run_deploy_scenario

pytestmark = [
    pytest.mark.docker,
    pytest.mark.skipif(not is_docker_available(), reason="Docker daemon not available"),
]


@pytest.fixture
def isolated_tmp(tmp_path, monkeypatch):
    """Bind directories are created under ``tmp_path``."""
    monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
    return tmp_path


def test_deploy_persists_artifacts(service_task_bpmn, isolated_tmp):
    result = run_deploy_scenario([service_task_bpmn], TestbedSettings())

    assert result.status == OverallStatus.PASSED, result.summary
    assert result.deploy_key is not None
    assert result.processes == ["service_task_process"]
    assert result.artifacts
    assert not list(isolated_tmp.glob("zeebe-data-*"))


def test_topology_is_healthy_once_ready():
    with broker_testbed(TestbedSettings()) as bed:
        topology = bed.client.topology().unwrap()
        assert topology.cluster_size == 1
        assert topology.brokers


def test_marker_never_seen_times_out(service_task_bpmn, isolated_tmp):
    settings = TestbedSettings(
        ready_marker="this line is never logged",
        max_wait_seconds=5,
        poll_interval_seconds=0.5,
    )
    result = run_deploy_scenario([service_task_bpmn], settings)

    assert result.status == OverallStatus.ERROR
    assert result.error["error_type"] == "StartError"
    assert result.error["reason"] == "TIMED_OUT"
    assert result.deploy_key is None
    assert not list(isolated_tmp.glob("zeebe-data-*"))


def test_cancelled_context(service_task_bpmn):
    ctx = CommandContext.background()
    ctx.cancel()

    result = run_deploy_scenario([service_task_bpmn], TestbedSettings(), ctx)

    assert result.status == OverallStatus.CANCELLED
    assert result.deploy_key is None
