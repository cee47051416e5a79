"""Price sources and numeric normalisation."""
