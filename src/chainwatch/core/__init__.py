"""Core data model, errors and exchange adapter protocol."""
