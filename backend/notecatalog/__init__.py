"""Hybrid retrieval backend for a personal notes and recipe catalog."""
