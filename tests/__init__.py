"""
Test suite for the catalog import pipeline.

Run all tests: pytest
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_commit_service.py -v
"""
