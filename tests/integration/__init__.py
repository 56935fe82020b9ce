"""Integration test package.

These tests exercise submission, batch processing, the HTTP trigger
and the CLI end to end on temporary SQLite files.  External HTTP calls
are mocked with respx.
"""
