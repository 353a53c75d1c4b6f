"""Shared utilities: logging, AI providers, cost tracking and errors."""
