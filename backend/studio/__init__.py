"""Garment studio: configuration compiler and resilient generation orchestrator."""
