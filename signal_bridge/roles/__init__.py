"""Pipeline roles: The Guard (risk) and The Sniper (execution)."""
