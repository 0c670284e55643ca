"""Lightmap Baker: Baking Package.

Parallel integration scheduler, bake orchestration, post-filters and
persistence of baked lightmap channels.
"""
