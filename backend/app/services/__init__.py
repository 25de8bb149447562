"""Domain services: membership decisions, message lifecycle and push fan-out."""
