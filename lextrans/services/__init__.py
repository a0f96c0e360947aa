"""Domain services: knowledge-base ingestion/retrieval and translation prompts."""
