"""API documentation assistant: Swagger ingestion, keyword retrieval, API tools and an agent loop."""

__version__ = "0.1.0"