"""API router modules."""
