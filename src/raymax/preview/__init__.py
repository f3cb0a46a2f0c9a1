"""Output side of a render: tone mapping and image export.

Components:
    tonemap: Reinhard/exposure tone mapping and gamma correction (NumPy)
    export: 8-bit PNG export via Pillow
"""
