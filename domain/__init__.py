"""Sales domain model: entities, value objects, validation and query parsing."""
