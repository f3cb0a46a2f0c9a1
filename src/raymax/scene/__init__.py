"""Scene module: scene description, device storage and ray-scene queries.

Components:
    intersection: Device primitive and mesh tables, closest-hit and shadow queries
    primitives: Plane, sphere and triangle descriptions
    scene: Immutable Scene, SceneBuilder and device upload
    cornell_box: Cornell box demo scene
    generator: Random sphere scene generator

Modules declare Taichi fields; import them after ``raymax.init()``.
"""
