"""Tool registry, filtering, approval policy and the confirmation flow."""
