"""NexLink social-network simulation: in-memory store, tools and HTTP surface."""
