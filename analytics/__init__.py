"""Pure analytics over the marketplace state tree."""
