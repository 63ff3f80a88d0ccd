"""FastAPI routers exposing the payment engine."""
