"""Chat-turn and voice pipeline phases used by the HTTP and WebSocket routes."""
