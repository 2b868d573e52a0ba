"""Domain modules of the Goose Tap ledger."""
