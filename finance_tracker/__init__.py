"""Finance Tracker: a small REST backend for transactions, debts and their linked expenses."""
