"""Utility modules for modtree."""
