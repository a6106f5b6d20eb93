"""Bundled templates and default resources, loaded with importlib.resources."""
