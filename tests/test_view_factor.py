"""
test_view_factor.py - Unit tests per il ray tracing Monte Carlo

Eseguire con: pytest tests/test_view_factor.py -v
"""

import pytest
import numpy as np
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from spacetherm.core import GeometryError, RayTracingCancelled, TimeoutExceeded, ValidationError
from spacetherm.radiation import (
    Surface, SceneGeometry, make_rectangle, make_disk, make_sphere,
    ProgressChannel, CancellationToken, MonteCarloViewFactor, compute_view_factor,
)
from spacetherm.radiation.view_factor import intersect_closest


def coaxial_disk_factor(r1, r2, h):
    """F_1→2 analitico tra dischi coassiali paralleli"""
    R1, R2 = r1 / h, r2 / h
    X = 1.0 + (1.0 + R2 ** 2) / R1 ** 2
    return 0.5 * (X - np.sqrt(X ** 2 - 4.0 * (R2 / R1) ** 2))


class TestSurfaces:
    """Test per superfici triangolate e scena"""

    def test_rectangle(self):
        plate = make_rectangle("p", (0, 0, 0), (2, 0, 0), (0, 3, 0))
        assert plate.n_triangles == 2
        assert plate.area == pytest.approx(6.0)
        assert np.allclose(plate.normals, [0, 0, 1])
        assert np.allclose(plate.flipped().normals, [0, 0, -1])

    def test_disk_area(self):
        disk = make_disk("d", (0, 0, 0), (0, 0, 1), 1.0)
        assert disk.area == pytest.approx(np.pi, rel=1e-3)
        assert np.allclose(disk.normals, [0, 0, 1])

    def test_sphere_normals_outward(self):
        sphere = make_sphere("s", (1, 2, 3), 2.0, subdivisions=2)
        centroids = sphere.vertices.mean(axis=1) - np.array([1, 2, 3])
        assert np.all(np.einsum("ij,ij->i", sphere.normals, centroids) > 0)
        inner = make_sphere("s_in", (1, 2, 3), 2.0, subdivisions=2, inward=True)
        assert np.allclose(inner.normals, -sphere.normals)
        assert sphere.area == pytest.approx(4 * np.pi * 4.0, rel=0.05)

    def test_from_triangles(self):
        surface = Surface.from_triangles("t", [
            {"v0": [0, 0, 0], "v1": [1, 0, 0], "v2": [0, 1, 0]},
        ])
        assert surface.area == pytest.approx(0.5)
        assert np.allclose(surface.normals[0], [0, 0, 1])

    def test_arrays_read_only(self):
        plate = make_rectangle("p", (0, 0, 0), (1, 0, 0), (0, 1, 0))
        with pytest.raises(ValueError):
            plate.vertices[0, 0, 0] = 5.0

    def test_degenerate_triangle(self):
        with pytest.raises(GeometryError):
            Surface("bad", [[[0, 0, 0], [1, 0, 0], [2, 0, 0]]])

    def test_bad_shape(self):
        with pytest.raises(GeometryError):
            Surface("bad", [[0, 0, 0], [1, 0, 0], [0, 1, 0]])

    def test_non_finite(self):
        with pytest.raises(GeometryError):
            Surface("bad", [[[0, 0, 0], [np.nan, 0, 0], [0, 1, 0]]])

    def test_normals_count_mismatch(self):
        with pytest.raises(GeometryError):
            Surface("bad", [[[0, 0, 0], [1, 0, 0], [0, 1, 0]]], normals=[[0, 0, 1], [0, 0, 1]])

    def test_scene_handles(self):
        a = make_rectangle("a", (0, 0, 0), (1, 0, 0), (0, 1, 0))
        b = make_disk("b", (0, 0, 1), (0, 0, -1), 0.5, segments=16)
        scene = SceneGeometry([a, b])

        assert len(scene) == 2
        assert "b" in scene
        assert scene.surface(scene.handle("b")) is b
        vertices, owner = scene.packed()
        assert vertices.shape == (18, 3, 3)
        assert list(owner).count(scene.handle("b")) == 16

        with pytest.raises(GeometryError):
            scene.add(make_rectangle("a", (0, 0, 0), (1, 0, 0), (0, 1, 0)))
        with pytest.raises(GeometryError):
            scene.handle("missing")
        with pytest.raises(GeometryError):
            SceneGeometry().packed()


class TestIntersection:
    """Test per l'intersezione Möller-Trumbore"""

    def setup_method(self):
        tri = np.array([[[0, 0, 1], [1, 0, 1], [0, 1, 1]],
                        [[0, 0, 3], [1, 0, 3], [0, 1, 3]]], dtype=float)
        self.v0 = tri[:, 0]
        self.e1 = tri[:, 1] - self.v0
        self.e2 = tri[:, 2] - self.v0

    def test_closest_hit(self):
        origins = np.array([[0.2, 0.2, 0.0]])
        dirs = np.array([[0.0, 0.0, 1.0]])
        t, idx = intersect_closest(origins, dirs, self.v0, self.e1, self.e2)
        assert t[0] == pytest.approx(1.0)
        assert idx[0] == 0

    def test_miss_and_behind(self):
        origins = np.array([[0.8, 0.8, 0.0], [0.2, 0.2, 0.0], [0.2, 0.2, 2.0]])
        dirs = np.array([[0.0, 0.0, 1.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
        t, idx = intersect_closest(origins, dirs, self.v0, self.e1, self.e2)
        # Fuori dal triangolo, parallelo, solo il secondo davanti
        assert idx[0] == -1 and np.isinf(t[0])
        assert idx[1] == -1
        assert idx[2] == 1 and t[2] == pytest.approx(1.0)


class TestViewFactorBenchmarks:
    """Confronto con soluzioni analitiche (1e5 raggi, tolleranza 5%)"""

    def test_coaxial_disks(self):
        """r = H: F = 0.382"""
        a = make_disk("A", (0, 0, 0), (0, 0, 1), 0.5)
        b = make_disk("B", (0, 0, 0.5), (0, 0, -1), 0.5)
        result = compute_view_factor(a, b, [a, b], n_rays=100_000, seed=42)

        assert coaxial_disk_factor(0.5, 0.5, 0.5) == pytest.approx(0.382, abs=1e-3)
        assert result.view_factor == pytest.approx(0.382, rel=0.05)
        assert result.n_rays == 100_000
        assert result.std_error == pytest.approx(
            np.sqrt(result.view_factor * (1 - result.view_factor) / 1e5))

    def test_perpendicular_plates(self):
        """Piastre unitarie perpendicolari con uno spigolo in comune: F = 0.200"""
        a = make_rectangle("A", (0, 0, 0), (1, 0, 0), (0, 1, 0))
        b = make_rectangle("B", (0, 0, 0), (0, 0, 1), (1, 0, 0))
        result = compute_view_factor(a, b, [a, b], n_rays=100_000, seed=7)
        assert result.view_factor == pytest.approx(0.200, rel=0.05)

    def test_concentric_spheres(self):
        """Sfera interna verso sfera esterna che la racchiude: F = 1"""
        inner = make_sphere("inner", (0, 0, 0), 0.5, subdivisions=2)
        outer = make_sphere("outer", (0, 0, 0), 1.0, subdivisions=2, inward=True)
        result = compute_view_factor(inner, outer, [inner, outer], n_rays=100_000, seed=3)
        assert result.view_factor == pytest.approx(1.0, rel=0.05)

    def test_reciprocity(self):
        """A1·F12 = A2·F21"""
        small = make_disk("small", (0, 0, 0), (0, 0, 1), 0.5)
        large = make_disk("large", (0, 0, 1), (0, 0, -1), 1.0)
        f12 = compute_view_factor(small, large, n_rays=100_000, seed=1).view_factor
        f21 = compute_view_factor(large, small, n_rays=100_000, seed=2).view_factor

        assert f12 == pytest.approx(coaxial_disk_factor(0.5, 1.0, 1.0), rel=0.05)
        assert small.area * f12 == pytest.approx(large.area * f21, rel=0.05)

    def test_occluder_blocks(self):
        """Una piastra più grande tra i dischi intercetta tutti i raggi"""
        a = make_disk("A", (0, 0, 0), (0, 0, 1), 0.5, segments=32)
        b = make_disk("B", (0, 0, 1), (0, 0, -1), 0.5, segments=32)
        shield = make_rectangle("shield", (-50, -50, 0.5), (100, 0, 0), (0, 100, 0))
        result = compute_view_factor(a, b, [a, b, shield], n_rays=10_000, seed=0)
        assert result.hits == 0

    def test_facing_away(self):
        """Superfici che non si vedono: F = 0"""
        a = make_disk("A", (0, 0, 0), (0, 0, -1), 0.5, segments=32)
        b = make_disk("B", (0, 0, 1), (0, 0, -1), 0.5, segments=32)
        assert compute_view_factor(a, b, n_rays="fast", seed=0).view_factor == 0.0


class TestViewFactorExecution:
    """Test per determinismo, progresso, annullamento e validazione"""

    def disks(self):
        a = make_disk("A", (0, 0, 0), (0, 0, 1), 0.5, segments=32)
        b = make_disk("B", (0, 0, 0.5), (0, 0, -1), 0.5, segments=32)
        return a, b

    def test_seed_reproducible(self):
        a, b = self.disks()
        first = MonteCarloViewFactor(n_rays=20_000, seed=11, batch_size=5000).compute(a, b)
        second = MonteCarloViewFactor(n_rays=20_000, seed=11, batch_size=5000).compute(a, b)
        assert first.hits == second.hits

    def test_independent_of_workers(self):
        a, b = self.disks()
        serial = MonteCarloViewFactor(n_rays=40_000, seed=5, batch_size=5000,
                                      n_workers=1).compute(a, b)
        threaded = MonteCarloViewFactor(n_rays=40_000, seed=5, batch_size=5000,
                                        n_workers=4).compute(a, b)
        assert serial.hits == threaded.hits

    def test_progress_reaches_100(self):
        a, b = self.disks()
        channel = ProgressChannel()
        MonteCarloViewFactor(n_rays=25_000, seed=0, batch_size=10_000).compute(
            a, b, progress=channel)

        updates = channel.drain()
        assert [u.rays_complete for u in updates] == [10_000, 20_000, 25_000]
        assert updates[-1].percent == pytest.approx(100.0)
        assert channel.latest == updates[-1]
        assert channel.get(timeout=0.01) is None

    def test_cancel_before_start(self):
        a, b = self.disks()
        token = CancellationToken()
        token.cancel()
        with pytest.raises(RayTracingCancelled) as info:
            MonteCarloViewFactor(n_rays=10_000, seed=0).compute(a, b, cancel=token)
        assert info.value.rays_complete == 0

    def test_cancel_during_run(self):
        """Annullamento richiesto dopo il primo batch"""
        a, b = self.disks()
        token = CancellationToken()

        class CancellingChannel(ProgressChannel):
            def publish(self, percent, rays_complete):
                super().publish(percent, rays_complete)
                token.cancel()

        with pytest.raises(RayTracingCancelled) as info:
            MonteCarloViewFactor(n_rays=50_000, seed=0, batch_size=10_000).compute(
                a, b, progress=CancellingChannel(), cancel=token)
        assert info.value.rays_complete == 10_000

    def test_wall_time_limit(self):
        a, b = self.disks()
        calculator = MonteCarloViewFactor(n_rays=20_000, seed=0, wall_time_limit=1e-12)
        with pytest.raises(TimeoutExceeded):
            calculator.compute(a, b)

    def test_same_surface_rejected(self):
        a, _ = self.disks()
        with pytest.raises(GeometryError):
            compute_view_factor(a, a, n_rays="fast")

    @pytest.mark.parametrize("kwargs", [
        {"n_rays": "ultra"}, {"n_rays": 0}, {"batch_size": 0}, {"wall_time_limit": -1.0},
    ])
    def test_invalid_settings(self, kwargs):
        with pytest.raises(ValidationError):
            MonteCarloViewFactor(**kwargs)

    def test_presets(self):
        assert MonteCarloViewFactor(n_rays="fast").n_rays == 10_000
        assert MonteCarloViewFactor().n_rays == 100_000
        assert MonteCarloViewFactor(n_rays="high").n_rays == 1_000_000

    def test_to_dict(self):
        a, b = self.disks()
        data = compute_view_factor(a, b, n_rays="fast", seed=0).to_dict()
        assert data["nRays"] == 10_000
        assert data["raysComplete"] == data["nRays"]
        assert 0.0 < data["viewFactor"] < 1.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
