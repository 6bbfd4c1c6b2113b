"""Static settings for the exporter."""
