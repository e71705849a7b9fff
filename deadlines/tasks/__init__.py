"""Task model, persistence, mutation stream and lifecycle actions."""
