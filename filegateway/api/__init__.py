"""HTTP layer: FastAPI routes and dependency wiring."""
