"""Tests for zeebe_testbed.deploy.testbed orchestration glue.

Container and gateway are mocked; see tests/integration for the real thing.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest


def _settings(**overrides):
    from zeebe_testbed.core.settings import TestbedSettings

    return TestbedSettings(**overrides)


# ===========================================================================
# broker_testbed()
# ===========================================================================


class TestBrokerTestbed:
    """Tests for the broker_testbed() context manager."""

    @patch("zeebe_testbed.deploy.testbed.GatewayClient")
    @patch("zeebe_testbed.deploy.testbed.ContainerHandle")
    def test_wires_resources(self, mock_handle_cls, mock_client_cls):
        from zeebe_testbed.deploy.testbed import broker_testbed

        handle = mock_handle_cls.return_value
        settings = _settings(max_wait_seconds=12, poll_interval_seconds=0.5)

        with broker_testbed(settings, run_id="r1") as bed:
            assert bed.data_dir.is_dir()
            assert bed.container is handle
            data_dir = bed.data_dir

        descriptor = mock_handle_cls.call_args[0][0]
        assert descriptor.bind_mounts == {data_dir: "/usr/local/zeebe/data"}
        assert descriptor.pre_stop == [["chmod", "-R", "a+rwX", "/usr/local/zeebe/data"]]
        assert descriptor.wait.max_wait == 12
        assert descriptor.wait.poll_interval == 0.5
        assert mock_handle_cls.call_args.kwargs["run_id"] == "r1"
        handle.start.assert_called_once()
        handle.gateway_address.assert_called_once_with(26500)
        mock_client_cls.connect.assert_called_once_with(
            handle.gateway_address.return_value,
            connect_timeout=10.0,
            send_timeout=30.0,
        )

    @patch("zeebe_testbed.deploy.testbed.GatewayClient")
    @patch("zeebe_testbed.deploy.testbed.ContainerHandle")
    def test_released_in_reverse_order(self, mock_handle_cls, mock_client_cls):
        from zeebe_testbed.deploy.testbed import broker_testbed

        order: list[str] = []
        handle = mock_handle_cls.return_value
        handle.__exit__.side_effect = lambda *a: order.append("container")
        client = mock_client_cls.connect.return_value
        client.__exit__.side_effect = lambda *a: order.append("client")

        with broker_testbed(_settings()) as bed:
            data_dir = bed.data_dir

        assert order == ["client", "container"]
        assert not data_dir.exists()

    @patch("zeebe_testbed.deploy.testbed.GatewayClient")
    @patch("zeebe_testbed.deploy.testbed.ContainerHandle")
    def test_start_failure_cleans_up(self, mock_handle_cls, mock_client_cls):
        from zeebe_testbed.core.errors import StartError, StartFailure
        from zeebe_testbed.deploy.testbed import broker_testbed

        handle = mock_handle_cls.return_value
        handle.start.side_effect = StartError("late", reason=StartFailure.TIMED_OUT)

        with pytest.raises(StartError):
            with broker_testbed(_settings()):
                pytest.fail("body must not run")

        data_dir = next(iter(mock_handle_cls.call_args[0][0].bind_mounts))
        assert not data_dir.exists()
        handle.__exit__.assert_called_once()
        mock_client_cls.connect.assert_not_called()

    @patch("zeebe_testbed.deploy.testbed.GatewayClient")
    @patch("zeebe_testbed.deploy.testbed.ContainerHandle")
    def test_connect_failure_stops_container(self, mock_handle_cls, mock_client_cls):
        from zeebe_testbed.core.errors import ConnectError
        from zeebe_testbed.deploy.testbed import broker_testbed

        mock_client_cls.connect.side_effect = ConnectError("unreachable")

        with pytest.raises(ConnectError):
            with broker_testbed(_settings()):
                pass
        mock_handle_cls.return_value.__exit__.assert_called_once()

    @patch("zeebe_testbed.deploy.testbed.GatewayClient")
    @patch("zeebe_testbed.deploy.testbed.ContainerHandle")
    def test_keep_containers(self, mock_handle_cls, mock_client_cls):
        import shutil

        from zeebe_testbed.deploy.testbed import broker_testbed

        with broker_testbed(_settings(keep_containers=True)) as bed:
            data_dir = bed.data_dir

        try:
            assert data_dir.is_dir()
            mock_handle_cls.return_value.__exit__.assert_not_called()
        finally:
            shutil.rmtree(data_dir)

    def test_broker_spec_overrides(self):
        from zeebe_testbed.deploy.testbed import broker_spec

        spec = broker_spec(_settings(image="camunda/zeebe:8.3.4", gateway_port=26600, ready_marker="up"))
        assert spec.image == "camunda/zeebe:8.3.4"
        assert spec.gateway_port == 26600
        assert spec.ready_marker == "up"
        assert spec.data_dir == "/usr/local/zeebe/data"


# ===========================================================================
# run_deploy_scenario()
# ===========================================================================


def _fake_testbed(data_dir: Path, send_result):
    """Patchable replacement for broker_testbed yielding mocks."""
    from zeebe_testbed.deploy.config import GatewayAddress

    command = MagicMock()
    command.send.return_value = send_result
    client = MagicMock()
    client.address = GatewayAddress("localhost", 49153)
    client.new_deploy_command.return_value = command
    container = MagicMock()
    container.name = "zeebe-testbed-zeebe-abc"

    @contextmanager
    def fake(settings, *, run_id=None, docker=None):
        yield MagicMock(data_dir=data_dir, container=container, client=client)

    return fake, command


def _deployed():
    from zeebe_testbed.client.commands import DeployedProcess, DeployResult

    return DeployResult(
        key=2251799813685249,
        processes=[
            DeployedProcess(
                bpmn_process_id="service_task_process",
                version=1,
                process_definition_key=2251799813685250,
                resource_name="service_task.bpmn",
            )
        ],
    )


class TestRunDeployScenario:
    """Tests for run_deploy_scenario()."""

    def test_passed(self, tmp_path, service_task_bpmn):
        from zeebe_testbed.core.result import Ok
        from zeebe_testbed.deploy import testbed
        from zeebe_testbed.deploy.results import OverallStatus

        (tmp_path / "raft-partition").mkdir()
        (tmp_path / "raft-partition" / "journal.log").write_bytes(b"x")
        fake, command = _fake_testbed(tmp_path, Ok(_deployed()))

        with patch.object(testbed, "broker_testbed", fake):
            result = testbed.run_deploy_scenario([service_task_bpmn], _settings())

        assert result.status == OverallStatus.PASSED
        assert result.deploy_key == 2251799813685249
        assert result.processes == ["service_task_process"]
        assert result.artifacts == ["raft-partition/journal.log"]
        assert result.resources == ["service_task.bpmn"]
        assert result.container == "zeebe-testbed-zeebe-abc"
        assert result.gateway_address == "localhost:49153"
        name = command.add_resource.call_args[0][1]
        assert name == "service_task.bpmn"
        assert command.add_resource.call_args[0][0] == service_task_bpmn.read_bytes()

    def test_no_artifacts_fails(self, tmp_path, service_task_bpmn):
        from zeebe_testbed.core.result import Ok
        from zeebe_testbed.deploy import testbed
        from zeebe_testbed.deploy.results import OverallStatus

        fake, _ = _fake_testbed(tmp_path, Ok(_deployed()))
        with patch.object(testbed, "broker_testbed", fake):
            result = testbed.run_deploy_scenario([service_task_bpmn], _settings())
        assert result.status == OverallStatus.FAILED

    def test_cancelled_send(self, tmp_path, service_task_bpmn):
        from zeebe_testbed.client.context import CommandContext
        from zeebe_testbed.core.errors import CommandError
        from zeebe_testbed.core.result import Err
        from zeebe_testbed.deploy import testbed
        from zeebe_testbed.deploy.results import OverallStatus

        ctx = CommandContext.background()
        ctx.cancel()
        fake, command = _fake_testbed(tmp_path, Err(CommandError.cancelled()))
        with patch.object(testbed, "broker_testbed", fake):
            result = testbed.run_deploy_scenario([service_task_bpmn], _settings(), ctx)

        command.send.assert_called_once_with(ctx)
        assert result.status == OverallStatus.CANCELLED
        assert result.deploy_key is None
        assert result.error["kind"] == "CANCELLED"

    def test_start_error(self, service_task_bpmn):
        from zeebe_testbed.core.errors import StartError, StartFailure
        from zeebe_testbed.deploy import testbed
        from zeebe_testbed.deploy.results import OverallStatus

        @contextmanager
        def failing(settings, *, run_id=None, docker=None):
            raise StartError("never ready", reason=StartFailure.TIMED_OUT)
            yield  # pragma: no cover

        with patch.object(testbed, "broker_testbed", failing):
            result = testbed.run_deploy_scenario([service_task_bpmn], _settings())

        assert result.status == OverallStatus.ERROR
        assert result.error["reason"] == "TIMED_OUT"

    def test_unreadable_resource_skips_broker(self, tmp_path):
        from zeebe_testbed.deploy import testbed
        from zeebe_testbed.deploy.results import OverallStatus

        with patch.object(testbed, "broker_testbed") as mock_bed:
            result = testbed.run_deploy_scenario([tmp_path / "missing.bpmn"], _settings())

        mock_bed.assert_not_called()
        assert result.status == OverallStatus.ERROR
        assert result.error["error_type"] == "ResourceReadError"

    def test_unexpected_exception_recorded(self, service_task_bpmn):
        from zeebe_testbed.deploy import testbed
        from zeebe_testbed.deploy.results import OverallStatus

        with patch.object(testbed, "broker_testbed", side_effect=RuntimeError("boom")):
            result = testbed.run_deploy_scenario([service_task_bpmn], _settings())

        assert result.status == OverallStatus.ERROR
        assert result.error == {"error_type": "RuntimeError", "message": "boom"}
