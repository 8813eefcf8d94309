"""Business logic: identity, guards, lifecycles, consistency and record managers."""
