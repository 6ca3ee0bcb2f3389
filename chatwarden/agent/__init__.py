"""Agent core: normalizer, dispatch pipeline, commands and the loop that drives them."""

from chatwarden.agent.loop import AgentLoop
from chatwarden.agent.pipeline import DispatchPipeline

__all__ = ["AgentLoop", "DispatchPipeline"]
