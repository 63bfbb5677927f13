"""HTTP layer — routers, auth dependency and the application factory."""
