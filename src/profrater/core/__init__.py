"""Core job model, store, and submission service."""
