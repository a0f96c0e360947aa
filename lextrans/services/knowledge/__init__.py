"""Knowledge-base ingestion and retrieval.

- **chunker** -- fixed-size overlapping text windows.
- **vector_index** -- in-memory chunk store and cosine similarity.
- **access** -- visibility and per-user enablement rules.
- **ingestion_service** -- knowledge-base creation and background embedding builds.
- **retrieval_service** -- scoped similarity search grouped by embedding model.
"""
