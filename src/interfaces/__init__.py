"""Platform interfaces and shared domain types."""
