"""Foxx newsletter popup service."""
