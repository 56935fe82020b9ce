"""Test suite for the compliance screening pipeline.

Unit tests cover the pure screening checks and analyzers; queue tests
cover the job store and workers; integration tests run whole batches
against a temporary SQLite database. Run `pytest` from the project root.
"""
