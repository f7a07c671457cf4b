"""Helper methods for libshell and downstream libshell libraries."""
