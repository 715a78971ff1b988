"""Session registry, replay scheduler, and the HTTP/WebSocket API.

The FastAPI app lives in ``replay_broadcaster.server.app`` and is not
imported here, so the registry and scheduler can be used without it.
"""
