"""Transition logic for the conversation loop."""

from typing import Literal

from mcpchat.engine.state import RoundState
from mcpchat.models.conversation import LoopState
from mcpchat.utils.logging import get_logger

logger = get_logger(__name__)


def route_after_detection(state: RoundState) -> Literal[LoopState.EXECUTING_TOOL, LoopState.DONE]:
    """Route from DETECTING: execute the detected call, or finish on plain text."""
    if state.pending_call is not None:
        return LoopState.EXECUTING_TOOL
    return LoopState.DONE


def route_after_tool(state: RoundState) -> Literal[LoopState.GENERATING, LoopState.DONE]:
    """Route from EXECUTING_TOOL: generate again unless the round budget is spent."""
    if state.tool_rounds >= state.max_rounds:
        logger.warning(f"Tool round budget exhausted after {state.tool_rounds} rounds")
        return LoopState.DONE
    return LoopState.GENERATING
