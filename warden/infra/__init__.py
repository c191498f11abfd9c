"""Infrastructure adapters: Postgres pool, Redis proxy, scheduler, auth."""
