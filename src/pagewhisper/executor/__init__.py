"""
Executor module - runs flows.

- orchestrator: FlowOrchestrator, the flow state machine
- outcome: FlowOutcome returned by execute()
- collaborators: processor, prompt builder and remote client interfaces
- sweeper: background expiry sweep for a CacheStore
"""

from pagewhisper.executor.collaborators import (
    ComponentProcessor,
    PassthroughProcessor,
    PromptBuilder,
    RemoteClient,
    TemplatePromptBuilder,
)
from pagewhisper.executor.orchestrator import FlowOrchestrator
from pagewhisper.executor.outcome import FlowOutcome
from pagewhisper.executor.sweeper import CacheSweeper, SweeperHandle

__all__ = [
    "CacheSweeper",
    "ComponentProcessor",
    "FlowOrchestrator",
    "FlowOutcome",
    "PassthroughProcessor",
    "PromptBuilder",
    "RemoteClient",
    "SweeperHandle",
    "TemplatePromptBuilder",
]
