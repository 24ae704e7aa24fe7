"""
HTTP surface for the Convoy-AI agent core.

Exposes conversation management, message runs streamed as Server-Sent Events,
approval decisions and storage health over a FastAPI application built by
``convoy_ai.server.main.create_app``.
"""
