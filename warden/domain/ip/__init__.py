"""IP sighting reconciliation and blocked-IP lookups."""
