"""Fractal - a coding tutor grounded in your workspace."""

from fractal.app import AppRuntime
from fractal.config import Settings, load_settings
from fractal.core import ConversationOrchestrator
from fractal.rpc import RpcClient, RpcServer

__version__ = "0.1.0"

__all__ = ["AppRuntime", "ConversationOrchestrator", "RpcClient", "RpcServer", "Settings", "load_settings"]
