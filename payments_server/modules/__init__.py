"""Money-movement modules: ledger, payouts, refunds, gift cards and the activity log."""
