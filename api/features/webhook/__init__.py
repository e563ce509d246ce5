"""Webhook ingress: verifies LINE signatures and enqueues chat requests.

No orchestration happens here; each accepted text message becomes one
``ChatRequest`` on the chat queue.
"""
