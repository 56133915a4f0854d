"""Transactional outbox relay for reliable domain event delivery."""

__version__ = "0.1.0"
