"""MediMind API - FastAPI service over the access and audit core."""
