"""Extractor provisioning, execution and input preparation."""
