"""HTTP query surface and manual ingestion endpoint."""
