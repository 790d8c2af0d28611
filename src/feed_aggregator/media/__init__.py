"""Image URL rewriting through the media proxy endpoint."""
