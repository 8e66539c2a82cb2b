"""Playwright-backed scenario execution and recording."""
