"""Versioning package: npm semver comparator, manifest models and token parsing."""
