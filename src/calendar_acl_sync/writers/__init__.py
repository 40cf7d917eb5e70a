"""Calendar ACL adapters."""
