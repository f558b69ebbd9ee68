"""HTTP API for cordoning, uncordoning and draining cluster nodes."""
