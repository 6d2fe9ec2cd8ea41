"""Account Service: user accounts, session credentials, and account tokens."""
