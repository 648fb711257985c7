"""Web adapter — FastAPI app and routes."""
