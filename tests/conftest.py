"""Pytest configuration and shared fixtures."""

# Load environment variables from .env file at test startup
# so RESTAPI_* settings are visible to ClientConfig
from dotenv import load_dotenv
load_dotenv()

pytest_plugins = [
    "tests.fixtures.transport",
]
