"""Devotional reflections: verse search and background reflection jobs over an LLM API."""
