TEST_API_KEY = "test-secret-key"
