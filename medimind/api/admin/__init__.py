"""User administration and audit log viewer."""
