"""Per-conversation run coordination.

``ConversationCoordinator`` sits between transports (HTTP/SSE) and the run
engine. It owns three registries, all mutated only from the event loop:

- active runs keyed by conversation id (at most one non-cancelled run each),
- live approvals keyed by approval id,
- event streams keyed by conversation id, kept for a grace period after a run
  so reconnecting clients can replay it.
"""

from .coordinator import ConversationCoordinator
from .streams import ConversationEventStream

__all__ = [
    "ConversationCoordinator",
    "ConversationEventStream",
]
