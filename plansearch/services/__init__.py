"""Business services: ingestion, retrieval, classification and the document facade."""
