"""Scene-level ray intersection on the device.

Top-level primitives live in one table with a kind tag (plane, sphere,
triangle); ``intersect_scene`` switches on the tag for each entry, then walks
every mesh's flattened BVH. The closest hit wins; on equal distances the
primitive tested first is kept.

Storage uses fixed-capacity fields (Structure of Arrays) filled by
``upload_primitives`` and ``upload_meshes``. Both replace the previous
contents; they are called by ``raymax.scene.scene.upload_scene`` under the
kernel lock and never while a render is running.

Python-scope queries (``query_closest_hit``, ``query_visible``) run one ray
through a small kernel and are used by ``Scene.intersect``, ``Scene.visible``
and the tests.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from enum import IntEnum

import numpy as np
import taichi as ti
import taichi.math as tm

from raymax.core.ray import T_MAX
from raymax.core.stats import AABB_TESTS, PLANE_TESTS, SHADOW, SPHERE_TESTS, TRIANGLE_TESTS, count_ray, count_test
from raymax.geometry.aabb import hit_aabb, safe_inverse
from raymax.geometry.hit import HitRecord, make_miss
from raymax.geometry.mesh import Mesh
from raymax.geometry.plane import Plane, hit_plane
from raymax.geometry.sphere import Sphere, hit_sphere
from raymax.geometry.triangle import Triangle, hit_triangle

vec3 = tm.vec3
vec2 = tm.vec2

# Shadow rays ignore hits closer than this to either endpoint
SHADOW_EPSILON = 1e-4


class PrimitiveKind(IntEnum):
    """Tag of a top-level primitive."""

    PLANE = 0
    SPHERE = 1
    TRIANGLE = 2


@ti.dataclass
class SceneHitRecord:
    """Record of a ray-scene intersection with material information.

    Attributes:
        hit: 1 if the ray intersected anything, 0 on a miss.
        t: Ray parameter of the closest intersection.
        point: World-space intersection point.
        normal: Unit shading normal facing the ray origin.
        geo_normal: Unit geometric normal facing the ray origin.
        front_face: 1 for front-face hits, 0 for back-face hits.
        uv: Surface parameterization at the hit.
        material_id: Material of the hit surface, -1 on a miss.
        primitive_id: Top-level primitive index, -1 for mesh triangles.
        mesh_id: Mesh index, -1 for top-level primitives.
    """

    hit: ti.i32
    t: ti.f32
    point: vec3
    normal: vec3
    geo_normal: vec3
    front_face: ti.i32
    uv: vec2
    material_id: ti.i32
    primitive_id: ti.i32
    mesh_id: ti.i32


# =============================================================================
# Primitive Storage
# =============================================================================

MAX_PRIMITIVES = 4096

# Per-kind meaning: plane (a=point, b=normal), sphere (a=center, b.x=radius),
# triangle (a, b, c = vertices, na..nc = optional vertex normals)
prim_kinds = ti.field(dtype=ti.i32, shape=MAX_PRIMITIVES)
prim_material_ids = ti.field(dtype=ti.i32, shape=MAX_PRIMITIVES)
prim_a = ti.Vector.field(3, dtype=ti.f32, shape=MAX_PRIMITIVES)
prim_b = ti.Vector.field(3, dtype=ti.f32, shape=MAX_PRIMITIVES)
prim_c = ti.Vector.field(3, dtype=ti.f32, shape=MAX_PRIMITIVES)
prim_na = ti.Vector.field(3, dtype=ti.f32, shape=MAX_PRIMITIVES)
prim_nb = ti.Vector.field(3, dtype=ti.f32, shape=MAX_PRIMITIVES)
prim_nc = ti.Vector.field(3, dtype=ti.f32, shape=MAX_PRIMITIVES)
prim_has_normals = ti.field(dtype=ti.i32, shape=MAX_PRIMITIVES)
num_primitives = ti.field(dtype=ti.i32, shape=())

# =============================================================================
# Mesh Storage (triangles and BVH nodes of all meshes, concatenated)
# =============================================================================

MAX_MESHES = 64
MAX_MESH_TRIANGLES = 1 << 17
MAX_BVH_NODES = 1 << 18

mesh_tri_offsets = ti.field(dtype=ti.i32, shape=MAX_MESHES)
mesh_tri_counts = ti.field(dtype=ti.i32, shape=MAX_MESHES)
mesh_node_offsets = ti.field(dtype=ti.i32, shape=MAX_MESHES)
mesh_node_counts = ti.field(dtype=ti.i32, shape=MAX_MESHES)
mesh_material_ids = ti.field(dtype=ti.i32, shape=MAX_MESHES)
mesh_has_normals = ti.field(dtype=ti.i32, shape=MAX_MESHES)
num_meshes = ti.field(dtype=ti.i32, shape=())

tri_v0 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_MESH_TRIANGLES)
tri_v1 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_MESH_TRIANGLES)
tri_v2 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_MESH_TRIANGLES)
tri_n0 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_MESH_TRIANGLES)
tri_n1 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_MESH_TRIANGLES)
tri_n2 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_MESH_TRIANGLES)

node_min = ti.Vector.field(3, dtype=ti.f32, shape=MAX_BVH_NODES)
node_max = ti.Vector.field(3, dtype=ti.f32, shape=MAX_BVH_NODES)
node_skip = ti.field(dtype=ti.i32, shape=MAX_BVH_NODES)
node_start = ti.field(dtype=ti.i32, shape=MAX_BVH_NODES)
node_count = ti.field(dtype=ti.i32, shape=MAX_BVH_NODES)


def clear_scene() -> None:
    """Remove all primitives and meshes."""
    num_primitives[None] = 0
    num_meshes[None] = 0


@dataclass(frozen=True)
class PrimitiveRecord:
    """Flattened top-level primitive ready for upload.

    Unused vectors are zero; see the field comments above for their meaning
    per kind.
    """

    kind: PrimitiveKind
    material_id: int
    a: tuple[float, float, float]
    b: tuple[float, float, float] = (0.0, 0.0, 0.0)
    c: tuple[float, float, float] = (0.0, 0.0, 0.0)
    na: tuple[float, float, float] | None = None
    nb: tuple[float, float, float] | None = None
    nc: tuple[float, float, float] | None = None


def upload_primitives(records: Sequence[PrimitiveRecord]) -> None:
    """Replace the top-level primitive table.

    Raises:
        RuntimeError: If more than MAX_PRIMITIVES primitives are given.
    """
    count = len(records)
    if count > MAX_PRIMITIVES:
        raise RuntimeError(f"Maximum number of primitives ({MAX_PRIMITIVES}) exceeded: {count}")

    kinds = np.zeros(MAX_PRIMITIVES, dtype=np.int32)
    materials = np.full(MAX_PRIMITIVES, -1, dtype=np.int32)
    has_normals = np.zeros(MAX_PRIMITIVES, dtype=np.int32)
    vectors = {name: np.zeros((MAX_PRIMITIVES, 3), dtype=np.float32) for name in ("a", "b", "c", "na", "nb", "nc")}

    for i, rec in enumerate(records):
        kinds[i] = int(rec.kind)
        materials[i] = rec.material_id
        vectors["a"][i] = rec.a
        vectors["b"][i] = rec.b
        vectors["c"][i] = rec.c
        if rec.na is not None:
            has_normals[i] = 1
            vectors["na"][i] = rec.na
            vectors["nb"][i] = rec.nb
            vectors["nc"][i] = rec.nc

    prim_kinds.from_numpy(kinds)
    prim_material_ids.from_numpy(materials)
    prim_has_normals.from_numpy(has_normals)
    prim_a.from_numpy(vectors["a"])
    prim_b.from_numpy(vectors["b"])
    prim_c.from_numpy(vectors["c"])
    prim_na.from_numpy(vectors["na"])
    prim_nb.from_numpy(vectors["nb"])
    prim_nc.from_numpy(vectors["nc"])
    num_primitives[None] = count


def upload_meshes(meshes: Sequence[tuple[Mesh, int]]) -> None:
    """Replace the mesh tables with (mesh, material_id) pairs.

    Raises:
        RuntimeError: If the mesh, triangle or BVH node capacity is exceeded.
    """
    if len(meshes) > MAX_MESHES:
        raise RuntimeError(f"Maximum number of meshes ({MAX_MESHES}) exceeded: {len(meshes)}")
    total_tris = sum(m.triangle_count for m, _ in meshes)
    if total_tris > MAX_MESH_TRIANGLES:
        raise RuntimeError(f"Maximum number of mesh triangles ({MAX_MESH_TRIANGLES}) exceeded: {total_tris}")
    total_nodes = sum(m.node_count for m, _ in meshes)
    if total_nodes > MAX_BVH_NODES:
        raise RuntimeError(f"Maximum number of BVH nodes ({MAX_BVH_NODES}) exceeded: {total_nodes}")

    tri_offsets = np.zeros(MAX_MESHES, dtype=np.int32)
    tri_counts = np.zeros(MAX_MESHES, dtype=np.int32)
    node_offsets = np.zeros(MAX_MESHES, dtype=np.int32)
    node_counts = np.zeros(MAX_MESHES, dtype=np.int32)
    materials = np.full(MAX_MESHES, -1, dtype=np.int32)
    normals_flag = np.zeros(MAX_MESHES, dtype=np.int32)

    verts = [np.zeros((MAX_MESH_TRIANGLES, 3), dtype=np.float32) for _ in range(6)]
    n_min = np.zeros((MAX_BVH_NODES, 3), dtype=np.float32)
    n_max = np.zeros((MAX_BVH_NODES, 3), dtype=np.float32)
    n_skip = np.zeros(MAX_BVH_NODES, dtype=np.int32)
    n_start = np.zeros(MAX_BVH_NODES, dtype=np.int32)
    n_count = np.zeros(MAX_BVH_NODES, dtype=np.int32)

    tri_cursor = 0
    node_cursor = 0
    for i, (mesh, material_id) in enumerate(meshes):
        t, n = mesh.triangle_count, mesh.node_count
        tri_offsets[i], tri_counts[i] = tri_cursor, t
        node_offsets[i], node_counts[i] = node_cursor, n
        materials[i] = material_id

        tri_slice = slice(tri_cursor, tri_cursor + t)
        verts[0][tri_slice] = mesh.v0
        verts[1][tri_slice] = mesh.v1
        verts[2][tri_slice] = mesh.v2
        if mesh.has_normals:
            normals_flag[i] = 1
            verts[3][tri_slice] = mesh.n0
            verts[4][tri_slice] = mesh.n1
            verts[5][tri_slice] = mesh.n2

        # Node indices stay local to the mesh; the kernel adds the offsets
        node_slice = slice(node_cursor, node_cursor + n)
        n_min[node_slice] = mesh.bvh.node_min
        n_max[node_slice] = mesh.bvh.node_max
        n_skip[node_slice] = mesh.bvh.node_skip
        n_start[node_slice] = mesh.bvh.node_start
        n_count[node_slice] = mesh.bvh.node_count

        tri_cursor += t
        node_cursor += n

    mesh_tri_offsets.from_numpy(tri_offsets)
    mesh_tri_counts.from_numpy(tri_counts)
    mesh_node_offsets.from_numpy(node_offsets)
    mesh_node_counts.from_numpy(node_counts)
    mesh_material_ids.from_numpy(materials)
    mesh_has_normals.from_numpy(normals_flag)
    for field, data in zip((tri_v0, tri_v1, tri_v2, tri_n0, tri_n1, tri_n2), verts):
        field.from_numpy(data)
    node_min.from_numpy(n_min)
    node_max.from_numpy(n_max)
    node_skip.from_numpy(n_skip)
    node_start.from_numpy(n_start)
    node_count.from_numpy(n_count)
    num_meshes[None] = len(meshes)


def get_primitive_count() -> int:
    return int(num_primitives[None])


def get_mesh_count() -> int:
    return int(num_meshes[None])


# =============================================================================
# Closest-Hit Queries
# =============================================================================


@ti.func
def _make_miss_record() -> SceneHitRecord:
    """Create a SceneHitRecord indicating no intersection."""
    return SceneHitRecord(
        hit=0,
        t=0.0,
        point=vec3(0.0, 0.0, 0.0),
        normal=vec3(0.0, 0.0, 0.0),
        geo_normal=vec3(0.0, 0.0, 0.0),
        front_face=0,
        uv=vec2(0.0, 0.0),
        material_id=-1,
        primitive_id=-1,
        mesh_id=-1,
    )


@ti.func
def _to_scene_record(rec: HitRecord, material_id: ti.i32, primitive_id: ti.i32, mesh_id: ti.i32) -> SceneHitRecord:
    return SceneHitRecord(
        hit=rec.hit,
        t=rec.t,
        point=rec.point,
        normal=rec.normal,
        geo_normal=rec.geo_normal,
        front_face=rec.front_face,
        uv=rec.uv,
        material_id=material_id,
        primitive_id=primitive_id,
        mesh_id=mesh_id,
    )


@ti.func
def hit_primitive(i: ti.i32, ray_origin: vec3, ray_direction: vec3, t_min: ti.f32, t_max: ti.f32) -> HitRecord:
    """Intersect top-level primitive ``i``, dispatching on its kind."""
    kind = prim_kinds[i]
    rec = make_miss()
    if kind == int(PrimitiveKind.PLANE):
        count_test(PLANE_TESTS)
        rec = hit_plane(ray_origin, ray_direction, Plane(point=prim_a[i], normal=prim_b[i]), t_min, t_max)
    elif kind == int(PrimitiveKind.SPHERE):
        count_test(SPHERE_TESTS)
        rec = hit_sphere(ray_origin, ray_direction, Sphere(center=prim_a[i], radius=prim_b[i].x), t_min, t_max)
    else:
        count_test(TRIANGLE_TESTS)
        tri = Triangle(
            v0=prim_a[i],
            v1=prim_b[i],
            v2=prim_c[i],
            n0=prim_na[i],
            n1=prim_nb[i],
            n2=prim_nc[i],
            has_normals=prim_has_normals[i],
        )
        rec = hit_triangle(ray_origin, ray_direction, tri, t_min, t_max)
    return rec


@ti.func
def _mesh_triangle(m: ti.i32, k: ti.i32) -> Triangle:
    return Triangle(
        v0=tri_v0[k],
        v1=tri_v1[k],
        v2=tri_v2[k],
        n0=tri_n0[k],
        n1=tri_n1[k],
        n2=tri_n2[k],
        has_normals=mesh_has_normals[m],
    )


@ti.func
def intersect_mesh(m: ti.i32, ray_origin: vec3, ray_direction: vec3, t_min: ti.f32, t_max: ti.f32) -> HitRecord:
    """Closest hit in mesh ``m`` using its BVH.

    Walks the pre-order node array; a node whose box is missed, or lies
    beyond the closest hit so far, is skipped with its whole subtree.
    """
    inv_dir = safe_inverse(ray_direction)
    node_base = mesh_node_offsets[m]
    tri_base = mesh_tri_offsets[m]
    end = mesh_node_counts[m]

    closest_t = t_max
    result = make_miss()
    node = 0
    while node < end:
        g = node_base + node
        count_test(AABB_TESTS)
        box_hit, _ = hit_aabb(ray_origin, inv_dir, node_min[g], node_max[g], t_min, closest_t)
        if box_hit == 0:
            node = node_skip[g]
        else:
            count = node_count[g]
            if count > 0:
                start = tri_base + node_start[g]
                for k in range(start, start + count):
                    count_test(TRIANGLE_TESTS)
                    rec = hit_triangle(ray_origin, ray_direction, _mesh_triangle(m, k), t_min, closest_t)
                    if rec.hit == 1:
                        closest_t = rec.t
                        result = rec
            node += 1
    return result


@ti.func
def intersect_mesh_linear(m: ti.i32, ray_origin: vec3, ray_direction: vec3, t_min: ti.f32, t_max: ti.f32) -> HitRecord:
    """Closest hit in mesh ``m`` by testing every triangle."""
    start = mesh_tri_offsets[m]
    closest_t = t_max
    result = make_miss()
    for k in range(start, start + mesh_tri_counts[m]):
        count_test(TRIANGLE_TESTS)
        rec = hit_triangle(ray_origin, ray_direction, _mesh_triangle(m, k), t_min, closest_t)
        if rec.hit == 1:
            closest_t = rec.t
            result = rec
    return result


@ti.func
def intersect_scene_with(
    ray_origin: vec3,
    ray_direction: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
    accelerate: ti.i32,
) -> SceneHitRecord:
    """Closest hit over all primitives and meshes.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The unit direction of the ray.
        t_min: Minimum t value to consider a valid hit.
        t_max: Maximum t value to consider a valid hit.
        accelerate: 1 to traverse mesh BVHs, 0 to scan every triangle.

    Returns:
        A SceneHitRecord for the closest hit, or a miss record.
    """
    closest_t = t_max
    result = _make_miss_record()

    for i in range(num_primitives[None]):
        rec = hit_primitive(i, ray_origin, ray_direction, t_min, closest_t)
        if rec.hit == 1:
            closest_t = rec.t
            result = _to_scene_record(rec, prim_material_ids[i], i, -1)

    for m in range(num_meshes[None]):
        rec = make_miss()
        if accelerate == 1:
            rec = intersect_mesh(m, ray_origin, ray_direction, t_min, closest_t)
        else:
            rec = intersect_mesh_linear(m, ray_origin, ray_direction, t_min, closest_t)
        if rec.hit == 1:
            closest_t = rec.t
            result = _to_scene_record(rec, mesh_material_ids[m], -1, m)

    return result


@ti.func
def intersect_scene(ray_origin: vec3, ray_direction: vec3, t_min: ti.f32, t_max: ti.f32) -> SceneHitRecord:
    """Closest hit over the whole scene using the mesh BVHs."""
    return intersect_scene_with(ray_origin, ray_direction, t_min, t_max, 1)


# =============================================================================
# Shadow Queries
# =============================================================================


@ti.func
def occluded(ray_origin: vec3, ray_direction: vec3, t_min: ti.f32, t_max: ti.f32) -> ti.i32:
    """Return 1 if anything is hit in (t_min, t_max); stops at the first hit."""
    count_ray(SHADOW)
    blocked = 0

    for i in range(num_primitives[None]):
        if blocked == 0:
            rec = hit_primitive(i, ray_origin, ray_direction, t_min, t_max)
            if rec.hit == 1:
                blocked = 1

    for m in range(num_meshes[None]):
        if blocked == 0:
            rec = intersect_mesh(m, ray_origin, ray_direction, t_min, t_max)
            if rec.hit == 1:
                blocked = 1

    return blocked


@ti.func
def visible(a: vec3, b: vec3) -> ti.i32:
    """Return 1 if the segment from a to b is unobstructed.

    Hits within SHADOW_EPSILON of either endpoint are ignored, so surfaces
    the endpoints lie on do not block the segment.
    """
    d = b - a
    dist = tm.length(d)
    result = 1
    if dist > 2.0 * SHADOW_EPSILON:
        result = 1 - occluded(a, d / dist, SHADOW_EPSILON, dist - SHADOW_EPSILON)
    return result


# =============================================================================
# Python-Scope Queries
# =============================================================================

_q_hit = ti.field(dtype=ti.i32, shape=())
_q_ids = ti.field(dtype=ti.i32, shape=4)
_q_scalars = ti.field(dtype=ti.f32, shape=1)
_q_vectors = ti.Vector.field(3, dtype=ti.f32, shape=4)


@ti.kernel
def _closest_hit_kernel(origin: vec3, direction: vec3, t_min: ti.f32, t_max: ti.f32, accelerate: ti.i32):
    # Single-iteration outer loop keeps the scene loops below serial
    for _ in range(1):
        rec = intersect_scene_with(origin, tm.normalize(direction), t_min, t_max, accelerate)
        _q_hit[None] = rec.hit
        _q_ids[0] = rec.front_face
        _q_ids[1] = rec.material_id
        _q_ids[2] = rec.primitive_id
        _q_ids[3] = rec.mesh_id
        _q_scalars[0] = rec.t
        _q_vectors[0] = rec.point
        _q_vectors[1] = rec.normal
        _q_vectors[2] = rec.geo_normal
        _q_vectors[3] = vec3(rec.uv.x, rec.uv.y, 0.0)


@ti.kernel
def _visible_kernel(a: vec3, b: vec3):
    for _ in range(1):
        _q_hit[None] = visible(a, b)


def _vec(v) -> tuple[float, float, float]:
    return (float(v[0]), float(v[1]), float(v[2]))


@dataclass(frozen=True)
class HitInfo:
    """Python-side copy of a SceneHitRecord for a hit.

    Attributes:
        t: Ray parameter along the normalized direction.
        point: Hit point.
        normal: Shading normal facing the ray origin.
        geo_normal: Geometric normal facing the ray origin.
        front_face: True for front-face hits.
        uv: Surface parameterization (barycentrics for triangles).
        material_id: Material of the hit surface.
        primitive_id: Top-level primitive index, -1 for mesh triangles.
        mesh_id: Mesh index, -1 for top-level primitives.
    """

    t: float
    point: tuple[float, float, float]
    normal: tuple[float, float, float]
    geo_normal: tuple[float, float, float]
    front_face: bool
    uv: tuple[float, float]
    material_id: int
    primitive_id: int
    mesh_id: int


def query_closest_hit(
    origin: tuple[float, float, float],
    direction: tuple[float, float, float],
    t_min: float = 1e-4,
    t_max: float = T_MAX,
    accelerate: bool = True,
) -> HitInfo | None:
    """Trace one ray against the uploaded scene.

    The caller must hold ``KERNEL_LOCK`` and have uploaded the scene.

    Returns:
        The closest hit, or None on a miss.
    """
    _closest_hit_kernel(vec3(*origin), vec3(*direction), t_min, t_max, int(accelerate))
    if _q_hit[None] == 0:
        return None
    uv = _q_vectors[3]
    return HitInfo(
        t=float(_q_scalars[0]),
        point=_vec(_q_vectors[0]),
        normal=_vec(_q_vectors[1]),
        geo_normal=_vec(_q_vectors[2]),
        front_face=bool(_q_ids[0]),
        uv=(float(uv[0]), float(uv[1])),
        material_id=int(_q_ids[1]),
        primitive_id=int(_q_ids[2]),
        mesh_id=int(_q_ids[3]),
    )


def query_visible(a: tuple[float, float, float], b: tuple[float, float, float]) -> bool:
    """Shadow-ray test between two points of the uploaded scene.

    The caller must hold ``KERNEL_LOCK`` and have uploaded the scene.
    """
    _visible_kernel(vec3(*a), vec3(*b))
    return bool(_q_hit[None])
