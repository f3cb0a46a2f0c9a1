"""Hit record shared by all primitive intersection routines.

Every ``hit_*`` function returns a ``HitRecord``; check ``hit`` before
reading any other field. Both normals are flipped to face the incoming ray,
and ``front_face`` records whether the ray struck the side the geometric
normal originally pointed to.
"""

import taichi as ti
import taichi.math as tm

vec3 = tm.vec3
vec2 = tm.vec2


@ti.dataclass
class HitRecord:
    """Record of a ray-primitive intersection.

    Attributes:
        hit: 1 if the ray intersected the primitive, 0 on a miss.
        t: Ray parameter of the intersection.
        point: World-space intersection point.
        normal: Unit shading normal, facing the ray origin. Equals the
            geometric normal unless vertex normals are interpolated.
        geo_normal: Unit geometric normal, facing the ray origin.
        front_face: 1 if the ray hit the front face, 0 for the back face.
        uv: Surface parameterization used for texturing.
    """

    hit: ti.i32
    t: ti.f32
    point: vec3
    normal: vec3
    geo_normal: vec3
    front_face: ti.i32
    uv: vec2


@ti.func
def make_miss() -> HitRecord:
    """Create a HitRecord indicating no intersection."""
    return HitRecord(
        hit=0,
        t=0.0,
        point=vec3(0.0, 0.0, 0.0),
        normal=vec3(0.0, 0.0, 0.0),
        geo_normal=vec3(0.0, 0.0, 0.0),
        front_face=0,
        uv=vec2(0.0, 0.0),
    )
