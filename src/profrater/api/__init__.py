"""HTTP surface: submission, status polling, and the worker trigger endpoint."""
