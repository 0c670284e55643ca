"""Lightmap Baker: Core Engine Package.

Texel accumulators, conservative lightmap rasterization, BVH raytracing
and Monte-Carlo light samplers for static lightmap baking.
"""
