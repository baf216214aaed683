"""Object-storage staging."""
