"""Service layer: model catalog, provider client, relay and chat bookkeeping."""
