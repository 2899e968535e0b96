"""Per-issuer statement adapters."""
