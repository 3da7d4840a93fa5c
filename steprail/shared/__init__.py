"""Shared utilities (logging, configuration) for steprail."""
