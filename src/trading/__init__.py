"""Quoting, instruction assembly and trade execution."""
