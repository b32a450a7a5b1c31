"""Web API package (F5): FastAPI application over the quiz engine."""
