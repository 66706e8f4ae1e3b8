"""Protocol definitions for the store's components."""
