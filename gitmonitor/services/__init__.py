"""Pipeline services: feed polling, summarization and their upstream clients."""
