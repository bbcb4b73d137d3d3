"""Application layer – cache semantics independent of the storage driver."""
