"""Feature apps: one package per API domain."""
