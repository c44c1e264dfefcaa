"""Target decomposition strategies (single, site, host, domain)."""
