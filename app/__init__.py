# =============================================================================
# app/ - FastAPI Application Package
# =============================================================================
# HTTP surface of the marketplace backend:
# - main.py: App entry point, middleware, error handlers, router mounts
# - config.py: Settings from the environment
# - auth/: Supabase JWT verification
# - routers/: Endpoints by feature
# - websocket/: Per-user realtime events
#
# Routers stay thin; authorization and state changes live in core/services.
# =============================================================================
