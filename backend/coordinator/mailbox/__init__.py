"""Per-target command mailbox and status reports."""
