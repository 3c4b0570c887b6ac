"""Stage drivers for the ingest pipeline."""
