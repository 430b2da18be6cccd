"""Summarium command line interface."""
