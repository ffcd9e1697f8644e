"""Gateway client.

Connects to a broker's gateway endpoint over gRPC and hands out command
builders. Connecting blocks until the channel is ready or the connect
timeout passes; a gateway that never answers is reported as
:class:`ConnectError` instead of surfacing later as a confusing RPC error.

Example::

    with GatewayClient.connect("localhost:26500") as client:
        topology = client.topology().unwrap()
        result = client.new_deploy_command().add_resource_file(path).send()
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import grpc
from pydantic import BaseModel, Field
from zeebe_grpc import gateway_pb2, gateway_pb2_grpc

from zeebe_testbed.client.commands import DeployResourceCommand
from zeebe_testbed.client.context import CommandContext
from zeebe_testbed.client.dispatch import dispatch
from zeebe_testbed.core.errors import ConnectError
from zeebe_testbed.core.logging import get_logger
from zeebe_testbed.core.result import Result
from zeebe_testbed.deploy.config import GatewayAddress

logger = get_logger(__name__)

# Matches the broker's default network.maxMessageSize.
MAX_MESSAGE_SIZE = 4 * 1024 * 1024


# =============================================================================
# Topology
# =============================================================================


class PartitionInfo(BaseModel):
    partition_id: int
    role: str
    health: str


class BrokerInfo(BaseModel):
    node_id: int
    host: str
    port: int
    version: str = ""
    partitions: list[PartitionInfo] = Field(default_factory=list)


class Topology(BaseModel):
    """Cluster view as reported by the gateway."""

    brokers: list[BrokerInfo] = Field(default_factory=list)
    cluster_size: int = 0
    partitions_count: int = 0
    replication_factor: int = 0
    gateway_version: str = ""

    @property
    def healthy(self) -> bool:
        """Every partition has a leader and all replicas report HEALTHY."""
        if not self.brokers or self.partitions_count <= 0:
            return False
        leaders: set[int] = set()
        for broker in self.brokers:
            for partition in broker.partitions:
                if partition.health != "HEALTHY":
                    return False
                if partition.role == "LEADER":
                    leaders.add(partition.partition_id)
        return len(leaders) >= self.partitions_count

    @classmethod
    def from_response(cls, response: Any) -> Topology:
        role_name = gateway_pb2.Partition.PartitionBrokerRole.Name
        health_name = gateway_pb2.Partition.PartitionBrokerHealth.Name
        brokers = [
            BrokerInfo(
                node_id=b.nodeId,
                host=b.host,
                port=b.port,
                version=b.version,
                partitions=[
                    PartitionInfo(
                        partition_id=p.partitionId,
                        role=role_name(p.role),
                        health=health_name(p.health),
                    )
                    for p in b.partitions
                ],
            )
            for b in response.brokers
        ]
        return cls(
            brokers=brokers,
            cluster_size=response.clusterSize,
            partitions_count=response.partitionsCount,
            replication_factor=response.replicationFactor,
            gateway_version=response.gatewayVersion,
        )


# =============================================================================
# Client
# =============================================================================


class GatewayClient:
    """A connected gateway session.

    Use :meth:`connect` rather than the constructor; the constructor takes
    an already-ready channel.
    """

    def __init__(
        self,
        channel: grpc.Channel,
        address: GatewayAddress,
        *,
        send_timeout: float | None = None,
    ) -> None:
        self._channel = channel
        self._stub = gateway_pb2_grpc.GatewayStub(channel)
        self._address = address
        self._send_timeout = send_timeout
        self._closed = False

    @classmethod
    def connect(
        cls,
        address: GatewayAddress | str,
        *,
        use_plaintext: bool = True,
        credentials: grpc.ChannelCredentials | None = None,
        connect_timeout: float = 10.0,
        send_timeout: float | None = None,
        options: Sequence[tuple[str, Any]] | None = None,
    ) -> GatewayClient:
        """Open a channel and wait until it is ready.

        Raises:
            ConnectError: Transport not configured, or the gateway did not
                become reachable within ``connect_timeout``
        """
        if isinstance(address, str):
            address = GatewayAddress.parse(address)

        channel_options = [
            ("grpc.max_send_message_length", MAX_MESSAGE_SIZE),
            ("grpc.max_receive_message_length", MAX_MESSAGE_SIZE),
            *(options or ()),
        ]

        if use_plaintext:
            channel = grpc.insecure_channel(str(address), options=channel_options)
        elif credentials is not None:
            channel = grpc.secure_channel(str(address), credentials, options=channel_options)
        else:
            raise ConnectError(
                "no transport configured: enable plaintext or supply channel credentials"
            ).with_context(address=str(address))

        logger.debug("gateway.connecting", address=str(address), timeout=connect_timeout)
        try:
            grpc.channel_ready_future(channel).result(timeout=connect_timeout)
        except grpc.FutureTimeoutError as exc:
            channel.close()
            raise ConnectError(
                f"gateway {address} not reachable within {connect_timeout}s",
                cause=exc,
            ).with_context(address=str(address)) from exc

        logger.info("gateway.connected", address=str(address))
        return cls(channel, address, send_timeout=send_timeout)

    @property
    def address(self) -> GatewayAddress:
        return self._address

    def new_deploy_command(self) -> DeployResourceCommand:
        return DeployResourceCommand(self._stub, default_timeout=self._send_timeout)

    def topology(self, ctx: CommandContext | None = None) -> Result[Topology]:
        """Fetch the cluster topology."""
        return dispatch(
            self._stub.Topology,
            gateway_pb2.TopologyRequest(),
            ctx or CommandContext.background(),
            operation="topology",
            timeout=self._send_timeout,
        ).map(Topology.from_response)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._channel.close()
        logger.debug("gateway.closed", address=str(self._address))

    def __enter__(self) -> GatewayClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = [
    "MAX_MESSAGE_SIZE",
    "PartitionInfo",
    "BrokerInfo",
    "Topology",
    "GatewayClient",
]
