"""Concierge AI Agent: a personal assistant that acts on a customer's behalf.

Architecture Overview
=====================

One customer message is handled by a **LangGraph** tool-use loop
(``concierge.agent``) with three nodes:

1. **model**: calls Claude with the transcript, the customer's system
   prompt and every tool definition.
2. **tools**: runs the requested tool calls in order and answers each
   tool use with exactly one tool result.
3. **guard**: if the final reply claims an action ("I've sent the
   email") and no tool ran, feeds it back once with a correction.

Routing: model → (tool use?) → tools → model; model → guard → (correct?) → model | END

Key Design Decisions
--------------------
- **Sandboxed browser**: ``browser_action`` drives a headless Chromium via
  Playwright. Sessions are single-use, budgeted (30 actions) and scoped
  to one loop run; every request the page makes goes through an SSRF
  policy, and redirect targets are re-checked after landing.
- **Tool registry**: tools are pydantic-validated handlers registered by
  name, so adding a tool is a data change.
- **Bounded loop**: an iteration cap and a wall-clock deadline per turn.
- **Errors**: tool failures go back to the model as error results; LLM
  failures and budget/deadline errors abort the turn.
- **Resilience**: HTTP clients retry timeouts and 5xx with exponential
  backoff (3 attempts), never 4xx.
- **Dual Interface**: FastAPI server (production) + CLI chat loop (development).

Package Structure
-----------------
- ``concierge/agent.py``: LangGraph loop controller
- ``concierge/llm.py``: Anthropic adapter (LangChain ``ChatAnthropic``)
- ``concierge/guard.py``: fake-action guard
- ``concierge/browser/``: URL policy, browser session, ``browser_action`` tool
- ``concierge/tools/``: tool registry and built-in tools
- ``concierge/services/``: external API clients, cache, metrics
- ``concierge/context.py``: customer profiles and history
- ``concierge/assistant.py``: per-customer turn handling
- ``concierge/audit.py``: fire-and-forget audit log
- ``concierge/config.py``: configuration from environment / SSM
- ``concierge/server.py`` / ``concierge/api/``: FastAPI application
- ``concierge/main.py``: CLI chat interface
"""
