"""Core scene-hosting primitives (channels, loader, preload negotiation, shared state).

Kept free of FastAPI concerns so it can be driven by the HTTP surface, an embedding shell, and tests.
"""
