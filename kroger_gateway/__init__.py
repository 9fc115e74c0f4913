"""Kroger grocery-ordering gateway for the wellness meal planner."""
