"""HTTP routers mounted on the runtime server."""
