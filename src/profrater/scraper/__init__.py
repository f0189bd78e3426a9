"""Scraping collaborator: Playwright navigation plus pluggable page extraction."""
