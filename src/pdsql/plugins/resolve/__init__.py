"""Resolve plugins: the plugin base classes, registry and the SQL backend."""
