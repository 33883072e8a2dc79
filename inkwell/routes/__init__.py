"""FastAPI routers for the manuscript API and the streaming chat turn."""
