"""Terminal UI for podrec."""
