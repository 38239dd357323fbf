"""
Utility helpers for paths, locators and human-readable formatting.
"""
