"""
Tests Package - Unit and Integration Tests

Shared fixtures and in-memory fakes live in tests/conftest.py. SQLite-backed
tests write to pytest's tmp_path; the profile API is served by
httpx.MockTransport.
"""
