"""Registry access package.

- license.py: license normalization for release metadata
- npm/: npm registry client (documents, release sets, range lookups)
"""
