"""Bearer-token authentication for the API."""
