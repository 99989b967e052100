"""Domain models for the completion service layer.

Re-exports every public symbol so callers can write
``from finagent.core.service.models import CompletionRequest``.
"""

from .constants import *  # noqa: F401, F403
from .context import *  # noqa: F401, F403
from .events import *  # noqa: F401, F403
