"""Domain packages for the staging ledger."""
