"""Domain services: vault, validators, credential resolution, broker, usage."""
