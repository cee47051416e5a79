"""Storage access: engine management and audit repositories."""
