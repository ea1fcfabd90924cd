"""Push channel transports."""
