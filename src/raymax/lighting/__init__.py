"""Lighting module.

Components:
    lights: Point, directional and ambient lights and the shared
        direct-lighting routine
    emitters: Emissive primitives evaluated analytically as area lights
"""
