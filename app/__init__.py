"""Marketplace notification service package."""
