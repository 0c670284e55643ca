"""Lightmap Baker: Scene Ingestion Package.

Scene description types, YAML scene loading, input validation, base-color
texture loading and synthetic test scenes.
"""
