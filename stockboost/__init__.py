"""Data-orchestration layer for the stock boost console."""
