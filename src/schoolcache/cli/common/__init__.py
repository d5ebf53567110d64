"""Shared pieces of the schoolcache CLI: context, options and error handling."""
