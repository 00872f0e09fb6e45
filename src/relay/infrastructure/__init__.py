"""Infrastructure layer: settings, logging, databases and outbox workers."""
