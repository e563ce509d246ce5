from chat.pipeline.orchestrator import (
    TRANSITIONS,
    ConversationOrchestrator,
    ExecutionContext,
)

__all__ = ["TRANSITIONS", "ConversationOrchestrator", "ExecutionContext"]
