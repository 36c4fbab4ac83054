"""Error taxonomy for the concierge agent.

Every error raised inside the agent loop derives from :class:`AgentError`.
Where an error ends up depends on where it is raised:

* anything raised while executing a tool (bad input, blocked URL, slow
  page, missing element, exhausted browser budget, a downstream API
  failing) is converted into a ``ToolResult(is_error=True)`` and handed
  back to the model, which can retry or explain the failure.
* errors raised by the loop itself (LLM unreachable, loop budget
  exceeded, turn deadline hit, a tool-result pairing violation)
  propagate out of the controller to the caller.
"""

from __future__ import annotations


class AgentError(Exception):
    """Base class for all concierge agent errors."""


class ValidationError(AgentError):
    """Malformed or missing tool input."""


class SecurityError(AgentError):
    """A URL failed the admission policy (SSRF guard)."""


class ResourceLimitError(AgentError):
    """The browser session has used its whole action budget."""


class NavigationTimeoutError(AgentError):
    """A page failed to settle within the navigation timeout."""


class NotFoundError(AgentError):
    """A click/type target could not be resolved on the current page."""


class BrowserStateError(AgentError):
    """A browser action was attempted outside the ``active`` state."""


class ProtocolError(AgentError):
    """Tool-use ids and tool-result ids do not pair up one-to-one."""


class ExternalServiceError(AgentError):
    """The LLM or a downstream API is unreachable or returned an error."""

    def __init__(
        self,
        message: str,
        *,
        service: str | None = None,
        status_code: int | None = None,
    ):
        self.service = service
        self.status_code = status_code
        super().__init__(message)


class LoopBudgetExceeded(AgentError):
    """The agent loop hit its iteration cap without a final answer."""

    def __init__(self, max_iterations: int):
        self.max_iterations = max_iterations
        super().__init__(
            f"Agent loop exceeded {max_iterations} model iterations without a final answer"
        )


class TurnTimeoutError(AgentError):
    """The whole turn ran past its wall-clock deadline."""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Turn did not complete within {timeout_seconds:.0f}s")


class CustomerNotFoundError(AgentError):
    """The context store has no profile for the requested customer."""
