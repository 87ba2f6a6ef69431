"""
view_factor.py - Fattori di vista con ray tracing Monte Carlo

=============================================================================
MONTE CARLO VIEW FACTOR
=============================================================================

F_A→B = frazione dell'energia emessa in modo diffuso da A intercettata da B.

Per ogni raggio:
    1. triangolo sorgente su A estratto in proporzione all'area
       (CDF cumulativa delle aree + ricerca binaria)
    2. punto uniforme nel triangolo: (u, v) ~ U[0,1]², se u + v > 1
       allora (u, v) → (1 - u, 1 - v)
    3. origine spostata di 1e-6 m lungo la normale
    4. direzione cosine-weighted nell'emisfero della normale (Malley):
           cos θ = √(1 - r1), sin θ = √r1, φ = 2π·r2
    5. intersezione Möller-Trumbore con tutti i triangoli di tutte le
       superfici tranne A (raggio parallelo o fuori dal triangolo = mancato)
    6. se l'intersezione più vicina con t > 0 appartiene a B, è un colpo

    F_A→B = colpi / raggi,  errore standard ≈ √(F(1 - F)/N)

La direzione cosine-weighted contiene già il peso cos θ dell'emissione
lambertiana: lo stimatore non ha fattori aggiuntivi.

ESECUZIONE:
    I raggi sono divisi in batch vettorizzati con NumPy. Ogni batch ha un
    proprio stream casuale (SeedSequence.spawn): a seed fissato il
    risultato non dipende dal numero di worker. I batch sono distribuiti
    su thread (joblib, backend "threading"); NumPy rilascia il GIL.

    Dopo ogni batch l'avanzamento (percentuale, raggi completati) viene
    pubblicato su un ProgressChannel. Tra un batch e l'altro viene
    controllato il CancellationToken (→ RayTracingCancelled, nessun
    risultato parziale) e l'eventuale wall_time_limit (→ TimeoutExceeded).

PRESET:
    RAY_COUNTS = {"fast": 1e4, "default": 1e5, "high": 1e6}
=============================================================================
"""

import math
import queue
import threading
import time
from dataclasses import dataclass
from typing import List, NamedTuple, Optional, Sequence, Union

import numpy as np
from joblib import Parallel, delayed

from ..core.errors import GeometryError, RayTracingCancelled, TimeoutExceeded, ValidationError
from ..solver.config import resolve_workers
from .surfaces import SceneGeometry, Surface

EPSILON = 1e-10
ORIGIN_OFFSET = 1e-6            # [m]
DEFAULT_BATCH_SIZE = 10_000
# Elementi (raggi × triangoli) per blocco di intersezione
MAX_PAIRS_PER_BLOCK = 1_000_000

RAY_COUNTS = {
    "fast": 10_000,
    "default": 100_000,
    "high": 1_000_000,
}


# =============================================================================
# PROGRESSO E ANNULLAMENTO
# =============================================================================

class ProgressUpdate(NamedTuple):
    percent: float
    rays_complete: int


class ProgressChannel:
    """
    Canale di avanzamento thread-safe (coda).

    Il ray tracer pubblica un ProgressUpdate dopo ogni batch; il chiamante
    li legge con get() o drain() da un altro thread.
    """

    def __init__(self):
        self._queue: "queue.Queue[ProgressUpdate]" = queue.Queue()
        self.latest: Optional[ProgressUpdate] = None

    def publish(self, percent: float, rays_complete: int):
        update = ProgressUpdate(percent, rays_complete)
        self.latest = update
        self._queue.put(update)

    def get(self, timeout: Optional[float] = None) -> Optional[ProgressUpdate]:
        """Prossimo aggiornamento, None se non arriva entro timeout"""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[ProgressUpdate]:
        """Tutti gli aggiornamenti in coda"""
        updates = []
        while True:
            try:
                updates.append(self._queue.get_nowait())
            except queue.Empty:
                return updates


class CancellationToken:
    """Richiesta di annullamento condivisa tra thread"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class ViewFactorResult:
    """Risultato del calcolo di F_A→B"""
    view_factor: float
    n_rays: int
    hits: int
    std_error: float
    duration: float                 # [s]
    surface_from: str = ""
    surface_to: str = ""

    def to_dict(self):
        return {
            "viewFactor": self.view_factor,
            "nRays": self.n_rays,
            "raysComplete": self.n_rays,
            "stdError": self.std_error,
            "duration": self.duration,
        }


# =============================================================================
# KERNEL VETTORIZZATI
# =============================================================================

def _tangent_frames(normals: np.ndarray):
    """Terna (t, b, n) per ogni normale"""
    helper = np.where(np.abs(normals[:, :1]) < 0.9,
                      np.array([[1.0, 0.0, 0.0]]), np.array([[0.0, 1.0, 0.0]]))
    t = np.cross(helper, normals)
    t /= np.linalg.norm(t, axis=1, keepdims=True)
    b = np.cross(normals, t)
    return t, b


def intersect_closest(origins: np.ndarray, directions: np.ndarray,
                      v0: np.ndarray, e1: np.ndarray, e2: np.ndarray):
    """
    Möller-Trumbore: intersezione più vicina di ogni raggio.

    Args:
        origins, directions: (R, 3)
        v0, e1, e2: Vertice base e spigoli dei triangoli (T, 3)

    Returns:
        (t (R,) con inf se mancato, indice del triangolo (R,) con -1 se mancato)
    """
    n_rays = origins.shape[0]
    best_t = np.full(n_rays, np.inf)
    best_idx = np.full(n_rays, -1, dtype=np.int64)
    rows = np.arange(n_rays)
    block = max(1, MAX_PAIRS_PER_BLOCK // max(1, n_rays))

    for start in range(0, v0.shape[0], block):
        sl = slice(start, start + block)
        d = directions[:, np.newaxis, :]
        h = np.cross(d, e2[np.newaxis, sl])
        a = np.einsum("tk,rtk->rt", e1[sl], h)
        parallel = np.abs(a) < EPSILON
        f = 1.0 / np.where(parallel, 1.0, a)

        s = origins[:, np.newaxis, :] - v0[np.newaxis, sl]
        u = f * np.einsum("rtk,rtk->rt", s, h)
        q = np.cross(s, e1[np.newaxis, sl])
        v = f * np.einsum("rk,rtk->rt", directions, q)
        t = f * np.einsum("tk,rtk->rt", e2[sl], q)

        hit = ~parallel & (u >= 0.0) & (u <= 1.0) & (v >= 0.0) & (u + v <= 1.0) & (t > EPSILON)
        t = np.where(hit, t, np.inf)
        local = np.argmin(t, axis=1)
        local_t = t[rows, local]
        closer = local_t < best_t
        best_t[closer] = local_t[closer]
        best_idx[closer] = local[closer] + start
    return best_t, best_idx


class _RayBatchKernel:
    """Dati precalcolati della sorgente e degli occlusori"""

    def __init__(self, source: Surface, occluders: np.ndarray, owner_is_target: np.ndarray):
        self.v0 = source.vertices[:, 0]
        self.e1 = source.vertices[:, 1] - self.v0
        self.e2 = source.vertices[:, 2] - self.v0
        self.normals = source.normals
        self.tangents, self.bitangents = _tangent_frames(source.normals)
        cdf = np.cumsum(source.areas) / source.areas.sum()
        cdf[-1] = 1.0
        self.cdf = cdf

        self.occ_v0 = occluders[:, 0]
        self.occ_e1 = occluders[:, 1] - self.occ_v0
        self.occ_e2 = occluders[:, 2] - self.occ_v0
        self.owner_is_target = owner_is_target

    def count_hits(self, n_rays: int, seed: np.random.SeedSequence) -> int:
        rng = np.random.default_rng(seed)

        tri = np.searchsorted(self.cdf, rng.random(n_rays), side="left")
        tri = np.minimum(tri, self.cdf.size - 1)

        u = rng.random(n_rays)
        v = rng.random(n_rays)
        fold = u + v > 1.0
        u[fold] = 1.0 - u[fold]
        v[fold] = 1.0 - v[fold]
        normal = self.normals[tri]
        origins = (self.v0[tri] + u[:, None] * self.e1[tri] + v[:, None] * self.e2[tri]
                   + ORIGIN_OFFSET * normal)

        r1 = rng.random(n_rays)
        r2 = rng.random(n_rays)
        cos_theta = np.sqrt(1.0 - r1)
        sin_theta = np.sqrt(r1)
        phi = 2.0 * np.pi * r2
        directions = ((sin_theta * np.cos(phi))[:, None] * self.tangents[tri]
                      + (sin_theta * np.sin(phi))[:, None] * self.bitangents[tri]
                      + cos_theta[:, None] * normal)
        directions /= np.linalg.norm(directions, axis=1, keepdims=True)

        if self.occ_v0.shape[0] == 0:
            return 0
        _, idx = intersect_closest(origins, directions, self.occ_v0, self.occ_e1, self.occ_e2)
        hit = idx >= 0
        return int(np.count_nonzero(self.owner_is_target[idx[hit]]))


# =============================================================================
# CALCOLATORE
# =============================================================================

class MonteCarloViewFactor:
    """
    Calcolatore Monte Carlo dei fattori di vista.
    """

    def __init__(self, n_rays: Union[int, str] = "default", seed: Optional[int] = None,
                 batch_size: int = DEFAULT_BATCH_SIZE, n_workers: int = 1,
                 wall_time_limit: Optional[float] = None, verbose: bool = False):
        """
        Args:
            n_rays: Numero di raggi o preset ("fast", "default", "high")
            seed: Seed (None = non riproducibile)
            batch_size: Raggi per batch (granularità di progresso e annullamento)
            n_workers: Thread (1 = sequenziale, 0 = tutti i core, -1 = tutti - 1)
            wall_time_limit: Budget di tempo [s] (None = illimitato)
            verbose: Stampa avanzamento
        """
        if isinstance(n_rays, str):
            if n_rays not in RAY_COUNTS:
                raise ValidationError(f"preset sconosciuto '{n_rays}' "
                                      f"(ammessi: {', '.join(RAY_COUNTS)})", "view_factor", "n_rays")
            n_rays = RAY_COUNTS[n_rays]
        if n_rays < 1:
            raise ValidationError("n_rays deve essere ≥ 1", "view_factor", "n_rays")
        if batch_size < 1:
            raise ValidationError("batch_size deve essere ≥ 1", "view_factor", "batch_size")
        if wall_time_limit is not None and wall_time_limit <= 0:
            raise ValidationError("wall_time_limit deve essere > 0", "view_factor",
                                  "wall_time_limit")
        self.n_rays = int(n_rays)
        self.seed = seed
        self.batch_size = int(batch_size)
        self.n_workers = n_workers
        self.wall_time_limit = wall_time_limit
        self.verbose = verbose

    def compute(self, surface_a: Surface, surface_b: Surface,
                all_surfaces: Union[SceneGeometry, Sequence[Surface]] = (),
                progress: Optional[ProgressChannel] = None,
                cancel: Optional[CancellationToken] = None) -> ViewFactorResult:
        """
        Calcola F_A→B.

        Args:
            surface_a: Superficie emittente
            surface_b: Superficie ricevente
            all_surfaces: Tutte le superfici della scena (occlusori); A e B
                sono aggiunte se mancano
            progress: Canale di avanzamento (opzionale)
            cancel: Token di annullamento (opzionale)

        Returns:
            ViewFactorResult

        Raises:
            RayTracingCancelled: se il token viene attivato
            TimeoutExceeded: se wall_time_limit è superato
            GeometryError: per geometria degenere o superfici con lo stesso id
        """
        t_start = time.time()
        kernel = self._kernel(surface_a, surface_b, all_surfaces)

        n_batches = math.ceil(self.n_rays / self.batch_size)
        sizes = [self.batch_size] * (n_batches - 1) + [self.n_rays - self.batch_size * (n_batches - 1)]
        seeds = np.random.SeedSequence(self.seed).spawn(n_batches)
        workers = min(resolve_workers(self.n_workers), n_batches)

        if self.verbose:
            print(f"[VF] F({surface_a.surface_id} → {surface_b.surface_id}): "
                  f"{self.n_rays} raggi in {n_batches} batch, {workers} worker")

        hits = 0
        rays_done = 0
        if workers == 1:
            for size, seed in zip(sizes, seeds):
                self._check_interrupt(cancel, rays_done, t_start)
                hits += kernel.count_hits(size, seed)
                rays_done += size
                self._publish(progress, rays_done)
        else:
            with Parallel(n_jobs=workers, backend="threading") as parallel:
                for start in range(0, n_batches, workers):
                    self._check_interrupt(cancel, rays_done, t_start)
                    chunk = list(zip(sizes[start:start + workers], seeds[start:start + workers]))
                    counts = parallel(delayed(kernel.count_hits)(size, seed)
                                      for size, seed in chunk)
                    for (size, _), count in zip(chunk, counts):
                        hits += count
                        rays_done += size
                        self._publish(progress, rays_done)

        F = hits / self.n_rays
        result = ViewFactorResult(
            view_factor=F,
            n_rays=self.n_rays,
            hits=hits,
            std_error=math.sqrt(F * (1.0 - F) / self.n_rays),
            duration=time.time() - t_start,
            surface_from=surface_a.surface_id,
            surface_to=surface_b.surface_id,
        )
        if self.verbose:
            print(f"[VF] F = {F:.4f} ± {result.std_error:.4f} ({result.duration:.2f} s)")
        return result

    def _kernel(self, surface_a: Surface, surface_b: Surface, all_surfaces) -> _RayBatchKernel:
        if surface_a.surface_id == surface_b.surface_id:
            raise GeometryError(f"sorgente e destinazione coincidono ('{surface_a.surface_id}')")
        occluders: List[Surface] = []
        seen = set()
        for surface in list(all_surfaces) + [surface_b]:
            if surface.surface_id in seen:
                continue
            seen.add(surface.surface_id)
            if surface.surface_id != surface_a.surface_id:
                occluders.append(surface)

        scene = SceneGeometry(occluders)
        vertices, owner = scene.packed()
        target = scene.handle(surface_b.surface_id)
        return _RayBatchKernel(surface_a, vertices, owner == target)

    def _check_interrupt(self, cancel: Optional[CancellationToken], rays_done: int,
                         t_start: float):
        if cancel is not None and cancel.is_cancelled:
            if self.verbose:
                print(f"[VF] Annullato dopo {rays_done} raggi")
            raise RayTracingCancelled(rays_done)
        if self.wall_time_limit is not None and time.time() - t_start > self.wall_time_limit:
            raise TimeoutExceeded(
                f"timeout: superato il limite di {self.wall_time_limit:.1f} s "
                f"dopo {rays_done} raggi")

    def _publish(self, progress: Optional[ProgressChannel], rays_done: int):
        if progress is not None:
            progress.publish(100.0 * rays_done / self.n_rays, rays_done)


def compute_view_factor(surface_a: Surface, surface_b: Surface,
                        all_surfaces: Union[SceneGeometry, Sequence[Surface]] = (),
                        n_rays: Union[int, str] = "default", seed: Optional[int] = None,
                        n_workers: int = 1,
                        progress: Optional[ProgressChannel] = None,
                        cancel: Optional[CancellationToken] = None) -> ViewFactorResult:
    """Funzione di convenienza per un singolo fattore di vista"""
    calculator = MonteCarloViewFactor(n_rays=n_rays, seed=seed, n_workers=n_workers)
    return calculator.compute(surface_a, surface_b, all_surfaces, progress, cancel)
