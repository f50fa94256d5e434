"""Tool declarations and the server-side tool registry."""
