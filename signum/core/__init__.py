"""Engine-wide primitives: exceptions and identities."""
