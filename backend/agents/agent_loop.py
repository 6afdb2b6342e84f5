from __future__ import annotations

from typing import Optional

from chat.stream_chunks import FinishReason
from utils.config import Config
from utils.logger import get_logger

logger = get_logger(__name__)


class AgentLoopController:
    """Decides after each model turn whether another turn is issued."""

    def __init__(self, max_iterations: Optional[int] = None):
        if max_iterations is None:
            max_iterations = Config.get_max_agent_iterations()
        elif max_iterations < 1:
            raise ValueError(f"max_iterations must be at least 1, got {max_iterations}")
        self.max_iterations = max_iterations
        self.iteration = 0
        self.bound_reached = False

    def reset(self) -> None:
        """Start of a new user-initiated request."""
        self.iteration = 0
        self.bound_reached = False

    def should_continue(self, finish_reason) -> bool:
        """
        Count one completed turn and decide whether to continue.

        Continues only when the model asked for tool calls and fewer than
        max_iterations turns have run. Hitting the bound stops the loop
        without raising.
        """
        self.iteration += 1
        reason = FinishReason.coerce(finish_reason)

        if reason != FinishReason.TOOL_CALLS:
            logger.debug(f"[AGENT] Turn {self.iteration} finished with '{reason.value}', stopping")
            return False

        if self.iteration >= self.max_iterations:
            self.bound_reached = True
            logger.warning(
                f"[AGENT] Iteration bound reached ({self.iteration}/{self.max_iterations}); "
                "returning current output as final"
            )
            return False

        return True
