"""Calendar API authentication."""
