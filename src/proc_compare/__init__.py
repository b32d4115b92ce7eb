"""proc-compare: find the most similar pair of running processes."""
