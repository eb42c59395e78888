"""Weather provider adapters."""
