"""State core for NexLink: entities, store, notification engine and persistence."""
