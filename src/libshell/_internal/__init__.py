"""Internal objects for libshell, not covered by versioning policy."""
