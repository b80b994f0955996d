"""Prefect flows wrapping shape inference."""
