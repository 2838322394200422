"""Pydantic schemas shared by the Second Brain server and its API clients."""
