"""Source-format ingestion: CSV column mapping and statement adapters."""
