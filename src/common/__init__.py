"""Shared building blocks for the sales tool detector pipeline."""
