"""
Tests Package - Unit and Scenario Tests

Test structure:
- tests/helpers.py - In-memory FakeQueue and payload builders
- tests/conftest.py - Shared pytest fixtures
- tests/test_*.py - One module per component

Queue provider calls are faked; the boto3 client is mocked in test_queue.py.
"""
