"""
parallel.py - Esecuzione di run indipendenti su più core

Gli strumenti batch (sensibilità, design space, failure modes) eseguono
molti run del solver completamente indipendenti: ognuno costruisce la
propria rete e non condivide stato. Questo modulo li distribuisce con
joblib (backend a processi di default).

Numero di worker (come resolve_workers):
    1  = sequenziale nel processo corrente
    0  = tutti i core
    -1 = tutti i core meno uno
    N  = esattamente N (limitato ai core disponibili)

L'ordine dei risultati è sempre quello degli input.
"""

from typing import Callable, Iterable, List, TypeVar

from joblib import Parallel, delayed

from .config import resolve_workers

T = TypeVar("T")
R = TypeVar("R")


def map_runs(fn: Callable[[T], R], items: Iterable[T], n_workers: int = 1,
             backend: str = "loky") -> List[R]:
    """
    Applica fn a ogni elemento, eventualmente in parallelo.

    Args:
        fn: Funzione a livello di modulo (serializzabile)
        items: Input dei run
        n_workers: Numero di worker (vedi docstring del modulo)
        backend: Backend joblib ("loky" processi, "threading" thread)

    Returns:
        Lista dei risultati nell'ordine degli input
    """
    items = list(items)
    workers = min(resolve_workers(n_workers), max(1, len(items)))
    if workers == 1:
        return [fn(item) for item in items]
    return Parallel(n_jobs=workers, backend=backend)(delayed(fn)(item) for item in items)
