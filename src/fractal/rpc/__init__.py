"""RPC bridge between the UI endpoint and the host process."""

from fractal.rpc.channel import MessageChannel, QueueChannel, create_channel_pair
from fractal.rpc.client import RpcClient
from fractal.rpc.protocol import RemoteCallEnvelope, RemoteResultEnvelope, RpcMethod
from fractal.rpc.server import RpcServer

__all__ = [
    "MessageChannel",
    "QueueChannel",
    "RemoteCallEnvelope",
    "RemoteResultEnvelope",
    "RpcClient",
    "RpcMethod",
    "RpcServer",
    "create_channel_pair",
]
