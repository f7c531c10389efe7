"""HTTP service exposing the agent loop."""
