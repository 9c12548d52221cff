"""Core: ports, events, session context and lifecycle controller."""
