"""Named constants for values that appear in multiple places or need explanation.

Changing any of these changes what the model sees or how long a turn may run,
so each is kept here rather than inlined at the call site.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Message composition budgets
# ---------------------------------------------------------------------------

# Total characters of artifact bodies placed into one request.
# Artifacts past this budget are omitted and reported in the breakdown.
ARTIFACT_TOTAL_CHAR_BUDGET: int = 40_000

# Characters kept from any single artifact body.
ARTIFACT_ITEM_CHAR_CAP: int = 8_000

# Appended to every artifact body cut short by either budget.
TRUNCATION_MARKER: str = "[TRUNCATED]"

# Prefix of the system message that carries the camp's structured memory.
MEMORY_MESSAGE_PREFIX: str = "Structured memory (JSON):\n"

# ---------------------------------------------------------------------------
# Tool-use loop
# ---------------------------------------------------------------------------

# Model rounds allowed before the loop gives up with LoopExceededError.
DEFAULT_MAX_ITERATIONS: int = 10

# Hard ceiling for a caller-supplied max_iterations; values outside [1, 50]
# are clamped.
MAX_ITERATIONS_CEILING: int = 50

# Wall-clock deadline for a single tool execution (approval wait excluded).
DEFAULT_TOOL_TIMEOUT_S: float = 30.0

# How long a timed-out executor gets to react to cancellation before the
# gateway stops waiting for it.  Its eventual result is discarded either way.
TOOL_CANCEL_GRACE_S: float = 1.0

# Characters of a tool result copied into the run-state log.  The full result
# still goes to the model; only the log entry is capped.
MAX_TOOL_RESULT_IN_RUNLOG_CHARS: int = 4_000

# ---------------------------------------------------------------------------
# OpenRouter
# ---------------------------------------------------------------------------

DEFAULT_OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"

# Read timeout for one chat-completion call.  Long tool-less streams on slow
# models can take minutes; override via openrouter.timeout_s in config.
OPENROUTER_DEFAULT_TIMEOUT_S: float = 120.0

# Attribution headers OpenRouter shows on its dashboard.
DEFAULT_APP_TITLE: str = "Basecamp"
DEFAULT_REFERER: str = "http://localhost"

# Request header that lets server-side logs be joined with local telemetry.
CORRELATION_ID_HEADER: str = "X-Basecamp-Correlation-Id"
