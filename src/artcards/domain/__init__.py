"""Domain layer: entity models, naming rules, prompt assembly.

This layer depends only on stdlib and pydantic.
It must never import from services, infrastructure, commands, or config.
"""
