"""Taichi-accelerated 2D light transport over constructive solid geometry.

This package renders flat scenes built from boolean-combined primitives by
shooting stratified rays from every pixel and following them through
reflection, refraction and absorption:
- Primitive shapes (circles, planes, polygons, directional lights)
- CSG combinators (union, intersect, complement) of any depth
- Recursive light transport with Snell refraction, Schlick reflectance
  and Beer-Lambert absorption
- Stratified angular sampling with parallel accumulation

Subpackages:
    core: Vector utilities, the light-transport integrator and render drivers
    geometry: Shape descriptions, primitive math and the CSG node table
    scene: Entities, scene upload, nearest-hit queries and job configuration
    preview: Image export utilities
"""

__version__ = "0.1.0"
