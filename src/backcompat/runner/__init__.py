"""Test orchestration - live replay, the worker-pool runner and fixture saving."""

from .engine import ResultCollector, TestRunner
from .replay import Replayer, TargetEndpoint
from .save import SaveUpdater

__all__ = ["Replayer", "ResultCollector", "SaveUpdater", "TargetEndpoint", "TestRunner"]
