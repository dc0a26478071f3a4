# mos_core/common/api/routing.py

# Detail routes only match UUID-shaped ids; anything else 404s at the router.
UUID_PATTERN = "[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
