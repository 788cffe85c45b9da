"""Purchase ledger: employee purchases, audit trail and ownership scoping."""
