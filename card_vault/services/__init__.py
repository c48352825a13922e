"""Execution engine, progress store and summary rendering."""
