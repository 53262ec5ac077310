"""Legal document ingestion and grounded question answering service."""

__version__ = "0.1.0"
