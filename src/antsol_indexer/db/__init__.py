"""SQLite persistence for the indexer: schema, connections and repositories."""
