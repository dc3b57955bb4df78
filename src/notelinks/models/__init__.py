"""Data models for the link maintainer."""
