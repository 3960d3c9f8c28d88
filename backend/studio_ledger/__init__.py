"""Studio booking and credit ledger."""
