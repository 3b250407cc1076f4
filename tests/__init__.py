"""
ChibiBooru Test Suite

Test organization:
- test_database.py: Database schema and connection tests
- test_models.py: Data access layer tests
- test_query_service.py: Search and similarity tests
- test_processing.py: Image processing and metadata tests
- test_routes.py: API endpoint tests
- test_integration.py: End-to-end integration tests
- conftest.py: Shared fixtures and test utilities
"""
