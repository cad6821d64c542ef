"""Persistence layer: storage representation and session/course stores."""
