"""Operator utilities for the posprint relay."""
