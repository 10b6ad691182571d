"""Application services for sales."""
