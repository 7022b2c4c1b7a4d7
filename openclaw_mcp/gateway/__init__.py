"""HTTP client for the OpenClaw gateway."""
