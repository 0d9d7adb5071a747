"""Mock collaborators for the demo backend."""
