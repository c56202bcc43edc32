"""OCI Distribution API surface."""
