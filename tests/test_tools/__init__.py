"""
Test Tools Package
Tests for the tools module (schedule expander, notification service)
"""
