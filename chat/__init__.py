"""Conversation pipeline: models, gateways and the orchestrator state machine."""
