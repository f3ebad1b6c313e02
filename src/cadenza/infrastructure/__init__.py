"""Infrastructure adapters: persistence, tagging, integrations, observability."""
