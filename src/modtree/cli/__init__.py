"""
CLI commands for modtree.
"""
