"""
surfaces.py - Superfici triangolate per il calcolo dei fattori di vista

=============================================================================
GEOMETRIA
=============================================================================

Una Surface è un insieme di triangoli appartenenti allo stesso nodo
termico, memorizzati come array NumPy di sola lettura:

    vertices: (n, 3, 3)   v0, v1, v2 di ogni triangolo
    normals:  (n, 3)      normali unitarie (lato emittente)
    areas:    (n,)        aree [m²]

Se la normale non è fornita viene ricavata dall'ordine dei vertici
(regola della mano destra): n = (v1 - v0) × (v2 - v0) / |...|.

SceneGeometry raccoglie le superfici di un modello in un'unica arena e
restituisce handle interi; i triangoli di tutte le superfici sono
concatenati con l'indice della superficie proprietaria, così che il ray
tracer possa lavorare su array contigui.

PRIMITIVE:
    make_rectangle  parallelogramma (2 triangoli)
    make_disk       disco a ventaglio di n settori
    make_sphere     icosfera (normali verso l'esterno o verso l'interno)

Triangoli degeneri (area nulla o vertici non finiti) → GeometryError.
=============================================================================
"""

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from ..core.errors import GeometryError

MIN_TRIANGLE_AREA = 1e-14   # [m²]


def _readonly(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


def _unit(v: np.ndarray) -> np.ndarray:
    return v / np.linalg.norm(v, axis=-1, keepdims=True)


class Surface:
    """
    Superficie triangolata associata a un nodo.

    Attributes:
        surface_id: Identificativo (tipicamente l'id del nodo)
        vertices: Vertici (n, 3, 3) [m]
        normals: Normali unitarie (n, 3)
        areas: Aree dei triangoli (n,) [m²]
    """

    def __init__(self, surface_id: str, vertices, normals=None):
        verts = np.array(vertices, dtype=float)
        if verts.ndim != 3 or verts.shape[1:] != (3, 3) or verts.shape[0] == 0:
            raise GeometryError(f"superficie '{surface_id}': servono triangoli (n, 3, 3), "
                                f"ricevuto {verts.shape}")
        if not np.all(np.isfinite(verts)):
            raise GeometryError(f"superficie '{surface_id}': vertici non finiti")

        cross = np.cross(verts[:, 1] - verts[:, 0], verts[:, 2] - verts[:, 0])
        doubled = np.linalg.norm(cross, axis=1)
        areas = 0.5 * doubled
        degenerate = np.flatnonzero(areas < MIN_TRIANGLE_AREA)
        if degenerate.size:
            raise GeometryError(f"superficie '{surface_id}': triangoli degeneri "
                                f"{degenerate.tolist()}")

        if normals is None:
            norms = cross / doubled[:, np.newaxis]
        else:
            norms = np.array(normals, dtype=float).reshape(-1, 3)
            if norms.shape[0] == 1 and verts.shape[0] > 1:
                norms = np.repeat(norms, verts.shape[0], axis=0)
            if norms.shape[0] != verts.shape[0]:
                raise GeometryError(f"superficie '{surface_id}': {norms.shape[0]} normali "
                                    f"per {verts.shape[0]} triangoli")
            lengths = np.linalg.norm(norms, axis=1)
            if np.any(~np.isfinite(lengths)) or np.any(lengths < 1e-12):
                raise GeometryError(f"superficie '{surface_id}': normale nulla")
            norms = norms / lengths[:, np.newaxis]

        self.surface_id = surface_id
        self.vertices = _readonly(verts)
        self.normals = _readonly(norms)
        self.areas = _readonly(areas)

    @classmethod
    def from_triangles(cls, surface_id: str, triangles: Iterable) -> "Surface":
        """Da dizionari {v0, v1, v2, normal?}"""
        triangles = list(triangles)
        vertices = [(t["v0"], t["v1"], t["v2"]) for t in triangles]
        normals = None
        if triangles and all(t.get("normal") is not None for t in triangles):
            normals = [t["normal"] for t in triangles]
        return cls(surface_id, vertices, normals)

    @property
    def n_triangles(self) -> int:
        return self.vertices.shape[0]

    @property
    def area(self) -> float:
        return float(self.areas.sum())

    def flipped(self) -> "Surface":
        """Stessa superficie con le normali invertite"""
        return Surface(self.surface_id, self.vertices, -self.normals)

    def __repr__(self):
        return (f"Surface('{self.surface_id}', {self.n_triangles} triangoli, "
                f"A = {self.area:.4g} m²)")


class SceneGeometry:
    """
    Arena delle superfici di un modello.

    add() restituisce un handle intero; i triangoli di tutte le superfici
    sono disponibili concatenati con l'handle della superficie proprietaria.
    """

    def __init__(self, surfaces: Sequence[Surface] = ()):
        self._surfaces: List[Surface] = []
        self._by_id: Dict[str, int] = {}
        self._packed: Optional[Tuple[np.ndarray, np.ndarray]] = None
        for surface in surfaces:
            self.add(surface)

    def add(self, surface: Surface) -> int:
        if surface.surface_id in self._by_id:
            raise GeometryError(f"superficie duplicata '{surface.surface_id}'")
        handle = len(self._surfaces)
        self._surfaces.append(surface)
        self._by_id[surface.surface_id] = handle
        self._packed = None
        return handle

    def __len__(self) -> int:
        return len(self._surfaces)

    def __iter__(self):
        return iter(self._surfaces)

    def __contains__(self, surface_id: str) -> bool:
        return surface_id in self._by_id

    def handle(self, surface_id: str) -> int:
        try:
            return self._by_id[surface_id]
        except KeyError:
            raise GeometryError(f"superficie non trovata '{surface_id}'") from None

    def surface(self, handle: int) -> Surface:
        return self._surfaces[handle]

    def packed(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Triangoli di tutte le superfici.

        Returns:
            (vertices (N, 3, 3), owner (N,) handle della superficie)
        """
        if self._packed is None:
            if not self._surfaces:
                raise GeometryError("scena vuota")
            vertices = np.concatenate([s.vertices for s in self._surfaces])
            owner = np.concatenate([np.full(s.n_triangles, h, dtype=np.int64)
                                    for h, s in enumerate(self._surfaces)])
            self._packed = (_readonly(vertices), _readonly(owner))
        return self._packed


# =============================================================================
# PRIMITIVE
# =============================================================================

def make_rectangle(surface_id: str, origin, edge_u, edge_v, flip: bool = False) -> Surface:
    """
    Parallelogramma con vertici origin, origin+u, origin+u+v, origin+v.

    La normale è u × v (invertita con flip=True).
    """
    o = np.asarray(origin, dtype=float)
    u = np.asarray(edge_u, dtype=float)
    v = np.asarray(edge_v, dtype=float)
    tris = np.array([[o, o + u, o + u + v], [o, o + u + v, o + v]])
    if flip:
        tris = tris[:, ::-1]
    return Surface(surface_id, tris)


def make_disk(surface_id: str, center, normal, radius: float, segments: int = 128) -> Surface:
    """Disco a ventaglio centrato in center, orientato secondo normal"""
    if radius <= 0 or segments < 3:
        raise GeometryError(f"disco '{surface_id}': raggio o numero di settori non valido")
    c = np.asarray(center, dtype=float)
    n = _unit(np.asarray(normal, dtype=float))
    helper = np.array([1.0, 0.0, 0.0]) if abs(n[0]) < 0.9 else np.array([0.0, 1.0, 0.0])
    t = _unit(np.cross(helper, n))
    b = np.cross(n, t)

    angles = np.linspace(0.0, 2.0 * np.pi, segments + 1)
    rim = c + radius * (np.cos(angles)[:, None] * t + np.sin(angles)[:, None] * b)
    tris = np.stack([np.broadcast_to(c, (segments, 3)), rim[:-1], rim[1:]], axis=1)
    return Surface(surface_id, tris, np.broadcast_to(n, (segments, 3)))


def _icosahedron() -> Tuple[np.ndarray, List[Tuple[int, int, int]]]:
    phi = (1.0 + 5.0 ** 0.5) / 2.0
    verts = np.array([
        [-1, phi, 0], [1, phi, 0], [-1, -phi, 0], [1, -phi, 0],
        [0, -1, phi], [0, 1, phi], [0, -1, -phi], [0, 1, -phi],
        [phi, 0, -1], [phi, 0, 1], [-phi, 0, -1], [-phi, 0, 1],
    ], dtype=float)
    faces = [
        (0, 11, 5), (0, 5, 1), (0, 1, 7), (0, 7, 10), (0, 10, 11),
        (1, 5, 9), (5, 11, 4), (11, 10, 2), (10, 7, 6), (7, 1, 8),
        (3, 9, 4), (3, 4, 2), (3, 2, 6), (3, 6, 8), (3, 8, 9),
        (4, 9, 5), (2, 4, 11), (6, 2, 10), (8, 6, 7), (9, 8, 1),
    ]
    return _unit(verts), faces


def make_sphere(surface_id: str, center, radius: float, subdivisions: int = 3,
                inward: bool = False) -> Surface:
    """
    Icosfera di raggio radius.

    Args:
        subdivisions: Livelli di suddivisione (20·4^k triangoli)
        inward: Normali verso il centro (superficie interna di un involucro)
    """
    if radius <= 0 or subdivisions < 0:
        raise GeometryError(f"sfera '{surface_id}': parametri non validi")
    verts, faces = _icosahedron()
    verts = list(verts)

    for _ in range(subdivisions):
        midpoints: Dict[Tuple[int, int], int] = {}

        def midpoint(i, j):
            key = (min(i, j), max(i, j))
            if key not in midpoints:
                verts.append(_unit(verts[i] + verts[j]))
                midpoints[key] = len(verts) - 1
            return midpoints[key]

        refined = []
        for a, b, c in faces:
            ab, bc, ca = midpoint(a, b), midpoint(b, c), midpoint(c, a)
            refined += [(a, ab, ca), (b, bc, ab), (c, ca, bc), (ab, bc, ca)]
        faces = refined

    points = np.asarray(center, dtype=float) + radius * np.array(verts)
    tris = points[np.array(faces)]
    # Orientamento verso l'esterno dalla posizione del baricentro
    normals = _unit(np.cross(tris[:, 1] - tris[:, 0], tris[:, 2] - tris[:, 0]))
    outward = np.einsum("ij,ij->i", normals, tris.mean(axis=1) - np.asarray(center, dtype=float))
    normals[outward < 0] *= -1.0
    if inward:
        normals = -normals
    return Surface(surface_id, tris, normals)
