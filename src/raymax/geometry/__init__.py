"""Geometry module for shape primitives and spatial acceleration.

Components:
    hit: HitRecord shared by all intersection routines
    plane: Infinite plane primitive
    sphere: Sphere primitive with robust intersection
    triangle: Moller-Trumbore triangle intersection
    aabb: Axis-aligned box slab test
    bvh: Flattened BVH construction (NumPy only)
    mesh: Immutable triangle mesh with a prebuilt BVH

Intersection routines are Taichi functions (@ti.func) returning a HitRecord.
"""
