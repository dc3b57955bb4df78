"""Services implementing the link maintenance pipeline."""
