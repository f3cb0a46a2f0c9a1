"""Material model.

Components:
    material: Material dataclass, device material table and checker texture
    diffuse: Cosine-weighted Lambertian sampling
    specular: Phong highlight and Phong lobe sampling
"""
